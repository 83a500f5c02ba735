import sys

from ftpget.cli import main

sys.exit(main())
