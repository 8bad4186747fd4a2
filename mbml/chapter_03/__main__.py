import sys

from mbml.chapter_03.program import main

sys.exit(main())
