import numpy as np
from pffrg.exceptions import ConfigurationError

def _sign(wQ):
    return np.where(wQ<0,-1.0,1.0)

def litimR(wQ,AC):
    """Bare inverse propagator sign(w)*max(|w|,AC) and its cutoff derivative."""
    aW=np.abs(wQ)
    return _sign(wQ)*np.maximum(aW,AC),_sign(wQ)*(aW<AC)

def additiveR(wQ,AC):
    root=np.sqrt(wQ**2+AC**2)
    return _sign(wQ)*root,_sign(wQ)*AC/root

def sharpR(wQ,AC,k=4):
    """Smoothened step function regulator theta=1-exp(-(|w|/AC)**k)."""
    xQ=(np.abs(wQ)/AC)**k
    with np.errstate(divide='ignore',invalid='ignore'):
        theta=-np.expm1(-xQ)
        dTheta=-k*xQ*np.exp(-xQ)/AC
        regL=np.where(wQ==0,np.inf,wQ/theta)
        dRegL=np.where(wQ==0,0.0,-wQ*dTheta/theta**2)
    return regL,dRegL

def softR(wQ,AC):
    with np.errstate(divide='ignore',invalid='ignore'):
        regL=np.where(wQ==0,np.inf,wQ+AC**2/wQ)
        dRegL=np.where(wQ==0,0.0,2*AC/wQ)
    return regL,dRegL

class ScaleProp:
    """
    Regularized propagators of the pseudo-fermions.

    The pseudo-fermion propagator is purely imaginary, it is handled
    through its real part g(w)=1/(D(w)+sE(w)) with the regulated bare
    inverse propagator D and the self-energy sE.

    ...
    Attributes
    ----------
    regulator : str
        Name of the regulator

    gF : function(wQ,sEQ,AC)
        The full propagator at scale AC

    sF : function(wQ,sEQ,AC)
        The single scale propagator at scale AC

    Methods
    -------
    bubble(wL,wR,sEL,sER,AC)
        Single scale derivative of the propagator pair (wL,wR)
    """
    def __init__(self,regulator='litim'):
        if regulator=='litim':
            self.regF=litimR
        elif regulator=='additive':
            self.regF=additiveR
        elif regulator=='sharp':
            self.regF=sharpR
        elif regulator=='soft':
            self.regF=softR
        else:
            raise ConfigurationError('Unknown regulator \''+str(regulator)+'\'')
        self.regulator=regulator

    def gF(self,wQ,sEQ,AC):
        regL,_=self.regF(np.asarray(wQ,dtype=np.float64),AC)
        return 1/(regL+sEQ)

    def sF(self,wQ,sEQ,AC):
        regL,dRegL=self.regF(np.asarray(wQ,dtype=np.float64),AC)
        with np.errstate(invalid='ignore'):
            sProp=-dRegL/(regL+sEQ)**2
        return np.where(np.isinf(regL),0.0,sProp)

    def bubble(self,wL,wR,sEL,sER,AC):
        """-(g(wL)s(wR)+s(wL)g(wR)), the propagator pair of the one-loop diagrams."""
        return -(self.gF(wL,sEL,AC)*self.sF(wR,sER,AC)+self.sF(wL,sEL,AC)*self.gF(wR,sER,AC))
