from vela.application import main

raise SystemExit(main())
