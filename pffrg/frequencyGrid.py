import logging
import numpy as np
from numba import jit
from pffrg.exceptions import ConfigurationError,check

logger=logging.getLogger(__name__)

@jit(nopython=True)
def gridOffset(grid,w):
    """Index of the smallest grid point >= w, clamped to the last point."""
    if w<=grid[0]:
        return 0
    for i in range(1,len(grid)):
        if grid[i]>=w:
            return i
    return len(grid)-1

@jit(nopython=True)
def gridInterpolate(grid,w):
    """Lower index, upper index and bias of w on the positive grid."""
    if w<=grid[0]:
        return 0,0,0.0
    for i in range(1,len(grid)):
        if grid[i]>w:
            return i-1,i,(w-grid[i-1])/(grid[i]-grid[i-1])
    return len(grid)-1,len(grid)-1,0.0

def trapezoidWeights(mesh):
    """Integration weights of the piecewise linear interpolant on mesh."""
    weights=np.zeros(len(mesh))
    deltas=np.diff(mesh)
    weights[:-1]+=0.5*deltas
    weights[1:]+=0.5*deltas
    return weights

class FrequencyGrid:
    """
    Mirror symmetric discretization of the Matsubara frequency axis.

    ...
    Attributes
    ----------
    size : int
        Number of positive frequencies N

    values : array_like(float, ndim=1)
        Positive frequencies w_1 < ... < w_N

    full : array_like(float, ndim=1)
        Mirrored mesh -w_N,...,-w_1,w_1,...,w_N of length 2N

    Methods
    -------
    offset(w)
        Index of the smallest positive grid point >= w

    interpolate(w)
        Linear interpolation support (lower, upper, bias) of w >= 0

    lesser(w), greater(w)
        Index into full of the grid point nearest below or above w

    integrationMesh()
        Mirrored mesh and its trapezoid weights
    """
    def __init__(self,values):
        values=np.asarray(values,dtype=np.float64)
        if values.ndim!=1 or len(values)<2:
            raise ConfigurationError('Frequency grid must contain at least two frequency values')
        if np.any(values<=0):
            raise ConfigurationError('Frequency grid values must be strictly positive')
        if np.any(np.diff(values)<=0):
            raise ConfigurationError('Frequency grid values must be strictly increasing')

        self.size=len(values)
        self.values=values.copy()
        self.values.setflags(write=False)
        self.full=np.append(-values[::-1],values)
        self.full.setflags(write=False)
        self._weights=trapezoidWeights(self.full)
        self._weights.setflags(write=False)

        logger.debug('Initialized frequency grid with mesh values %s',' '.join('%g'%w for w in self.full))

    def __len__(self):
        return self.size

    def __iter__(self):
        return iter(self.values)

    def positive(self):
        return self.values

    def negative(self):
        return self.full[:self.size]

    def offset(self,w):
        check(w>=0,'Frequency offset requires a non-negative argument')
        return gridOffset(self.values,w)

    def interpolate(self,w):
        """
        Parameters
        ----------
        w : float
            Non-negative frequency

        Returns
        -------
        lower, upper : int
            Offsets of the support points on the positive grid

        bias : float
            Weight of the upper support point, f(w)=(1-bias)*f[lower]+bias*f[upper]
        """
        check(w>=0,'Frequency interpolation requires a non-negative argument')
        return gridInterpolate(self.values,w)

    def lesser(self,w):
        if w<0:
            return 2*self.size-1-self.greater(-w)
        if w<=self.values[0]:
            return self.size
        for i in range(1,self.size):
            if self.values[i]>w:
                return self.size+i-1
        return 2*self.size-1

    def greater(self,w):
        if w<0:
            return 2*self.size-1-self.lesser(-w)
        if w<=self.values[0]:
            return self.size
        for i in range(1,self.size):
            if self.values[i]>w:
                return self.size+i
        return 2*self.size-1

    def integrationMesh(self):
        return self.full,self._weights
