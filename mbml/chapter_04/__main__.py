import sys

from mbml.chapter_04.program import main

sys.exit(main())
