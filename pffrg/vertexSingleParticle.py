import numpy as np
from pffrg.exceptions import check

class SingleParticleVertex:
    """
    Self-energy on the positive frequency grid. The self-energy is odd
    in frequency, values at negative frequencies are obtained by a sign flip.

    ...
    Attributes
    ----------
    size : int
        Number of positive frequencies

    data : array_like(float, ndim=1)
        Self-energy at the positive grid frequencies

    Methods
    -------
    value(w)
        Linearly interpolated self-energy at frequency w

    values(wQ)
        Vectorized version of value

    ref(iterator)
        Writable view on the element at iterator
    """
    def __init__(self,context):
        self.frequency=context.frequency
        self.size=self.frequency.size
        self.data=np.zeros(self.size)

    def expandIterator(self,iterator):
        check(0<=iterator<self.size,'Single particle iterator out of range')
        return self.frequency.values[iterator]

    def ref(self,iterator):
        check(0<=iterator<self.size,'Single particle iterator out of range')
        return self.data[iterator:iterator+1]

    def value(self,w):
        sign=1.0
        if w<0:
            w=-w
            sign=-1.0
        lower,upper,bias=self.frequency.interpolate(w)
        return sign*((1-bias)*self.data[lower]+bias*self.data[upper])

    def values(self,wQ):
        wQ=np.asarray(wQ,dtype=np.float64)
        return np.where(wQ<0,-1.0,1.0)*np.interp(np.abs(wQ),self.frequency.values,self.data)

    def isDiverged(self):
        return bool(np.isnan(self.data).any())
