from __future__ import annotations

from framework_edits.entrypoints.main import main


raise SystemExit(main())
