import sys

from mbml.chapter_07.program import main

sys.exit(main())
