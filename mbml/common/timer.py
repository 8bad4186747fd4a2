import time


class CodeTimer(object):
    """
    Prints a message when entered and the elapsed time when left.

    with CodeTimer("Training"):
        ...
    """

    def __init__(self, message, print_logs=True):
        self.message = message
        self.print_logs = print_logs
        self.elapsed = None

    def __enter__(self):
        if self.print_logs:
            print("%s..." % self.message, end="", flush=True)
        self.t1 = time.time()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.elapsed = time.time() - self.t1
        if self.print_logs:
            print(" done. (elapsed = %.3fs)" % self.elapsed)
        return False
