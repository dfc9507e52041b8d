import sys

from log_processor.cli import main

sys.exit(main())
