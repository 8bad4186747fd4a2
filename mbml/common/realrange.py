import math
import numpy as np


class RealRange(object):
    """
    A closed interval [min, max] sampled at `steps` evenly spaced points.

    Bounds given in the wrong order are swapped.
    """

    def __init__(self, min_value=0.0, max_value=1.0, steps=100):
        if steps < 2:
            raise ValueError("A range needs at least two steps, got %s" % steps)
        if min_value > max_value:
            min_value, max_value = max_value, min_value
        self.min = float(min_value)
        self.max = float(max_value)
        self.steps = int(steps)

    @property
    def delta(self):
        return self.max - self.min

    @property
    def step_size(self):
        return self.delta / (self.steps - 1)

    @property
    def values(self):
        return np.linspace(self.min, self.max, self.steps)

    def round(self):
        """
        Output
        --------
        A new range with bounds snapped outwards to a power-of-ten grid
        sized by the range's width.
        """
        if self.delta <= 0:
            return RealRange(self.min, self.max, self.steps)
        factor = 10.0 ** math.ceil(math.log10(self.delta))
        if self.min < 0 < self.max:
            factor /= 10
        lower = math.floor(self.min / factor) * factor
        upper = math.ceil(self.max / factor) * factor
        return RealRange(lower, upper, self.steps)

    def __eq__(self, other):
        return isinstance(other, RealRange) and (self.min, self.max, self.steps) == (other.min, other.max, other.steps)

    def __repr__(self):
        return "RealRange(%s, %s, steps=%s)" % (self.min, self.max, self.steps)
