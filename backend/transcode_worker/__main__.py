import sys

from transcode_worker.cli import main

sys.exit(main())
