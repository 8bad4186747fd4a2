import sys

from mbml.chapter_05.program import main

sys.exit(main())
