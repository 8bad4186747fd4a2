import sys

from mbml.chapter_01.program import main

sys.exit(main())
