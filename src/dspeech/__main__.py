import sys

from dspeech.cli import main

sys.exit(main())
