import sys

from mbml.chapter_02.program import main

sys.exit(main())
