import sys

from eolforge.normalize import main

sys.exit(main())
