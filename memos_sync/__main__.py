import sys

from memos_sync.cli import main

sys.exit(main())
