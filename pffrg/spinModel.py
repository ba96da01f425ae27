import numpy as np

class SpinModel:
    """
    Two-spin interactions between the reference site and the
    representatives of the lattice.

    ...
    Attributes
    ----------
    interactions : list of (int, array_like(float, ndim=2))
        Representative id and 3x3 coupling matrix J[s1][s2] where s1 (s2)
        is the spin component on the reference site (representative)

    interactionParameters : list of str
        Names of the task file parameters the couplings were built from
    """
    def __init__(self,interactions=(),interactionParameters=()):
        self.interactions=[(int(rid),np.array(j,dtype=np.float64).reshape(3,3)) for rid,j in interactions]
        self.interactionParameters=list(interactionParameters)

    def couplingMatrix(self,rid):
        """Total coupling between the reference site and representative rid."""
        total=np.zeros((3,3))
        for r,j in self.interactions:
            if r==rid:
                total+=j
        return total

    def isHeisenberg(self,tol=1e-10):
        for _,j in self.interactions:
            if np.abs(j-j[0,0]*np.eye(3)).max()>tol:
                return False
        return True

    def isDiagonal(self,tol=1e-10):
        for _,j in self.interactions:
            if np.abs(j-np.diag(np.diag(j))).max()>tol:
                return False
        return True
