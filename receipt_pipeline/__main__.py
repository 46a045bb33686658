import sys

from receipt_pipeline.cli import main


sys.exit(main())
