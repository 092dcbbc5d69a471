from repo_snapshot.cli import main

raise SystemExit(main())
