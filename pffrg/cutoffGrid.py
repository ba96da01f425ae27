import logging
import numpy as np
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

class CutoffGrid:
    """
    Strictly decreasing sequence of cutoff values along which the
    flow equations are integrated.

    ...
    Methods
    -------
    find(cutoff)
        Index of the first grid value equal to cutoff, or len(grid)

    last()
        Index of the terminal cutoff
    """
    def __init__(self,values):
        values=np.asarray(values,dtype=np.float64)
        if values.ndim!=1 or len(values)<2:
            raise ConfigurationError('Cutoff grid must contain at least two values')
        if np.any(np.diff(values)>=0):
            raise ConfigurationError('Cutoff grid must be strictly decreasing')

        self.values=values.copy()
        self.values.setflags(write=False)
        logger.debug('Initialized cutoff grid with values %s',' '.join('%g'%c for c in self.values))

    def __len__(self):
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __getitem__(self,i):
        return self.values[i]

    def begin(self):
        return 0

    def end(self):
        return len(self.values)

    def last(self):
        return len(self.values)-1

    def find(self,cutoff):
        for i,c in enumerate(self.values):
            if c==cutoff:
                return i
        return len(self.values)

    @classmethod
    def exponential(cls,maxCutoff,minCutoff,step):
        """Geometric sequence maxCutoff, step*maxCutoff, ... terminated by minCutoff."""
        if not 0<step<1 or minCutoff<=0 or maxCutoff<=minCutoff:
            raise ConfigurationError('Invalid exponential cutoff discretization')
        values=[maxCutoff]
        while values[-1]*step>minCutoff:
            values.append(values[-1]*step)
        values.append(minCutoff)
        return cls(values)

    @classmethod
    def linear(cls,maxCutoff,minCutoff,count):
        if count<2 or maxCutoff<=minCutoff:
            raise ConfigurationError('Invalid linear cutoff discretization')
        return cls(np.linspace(maxCutoff,minCutoff,count))
