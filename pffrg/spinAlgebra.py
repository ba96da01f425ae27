import numpy as np

pauli=np.array([[[0,1],[1,0]],[[0,-1j],[1j,0]],[[1,0],[0,-1]],[[1,0],[0,1]]],dtype=np.complex128)

def blockPhase(a,b):
    """Vertex blocks with exactly one density index are purely imaginary."""
    return 1j if (a==3)!=(b==3) else 1.0

def productCoefficients():
    """f[a,c,e] with tau^a tau^c = sum_e f[a,c,e] tau^e."""
    f=np.zeros((4,4,4),dtype=np.complex128)
    for a in range(4):
        for c in range(4):
            for e in range(4):
                f[a,c,e]=np.trace(pauli[e]@pauli[a]@pauli[c])/2
    return f

def _traceFour(e,a,c,b):
    return np.trace(pauli[e]@pauli[a]@pauli[c]@pauli[b])/2

def _realTable(raw,blocks):
    """Contraction table acting on the real parts stored for each block."""
    n=len(blocks)
    table=np.zeros((n,n,n))
    for o,bo in enumerate(blocks):
        for x,bx in enumerate(blocks):
            for y,by in enumerate(blocks):
                c=raw(bo,bx,by)
                if c==0:
                    continue
                table[o,x,y]=(blockPhase(*bx)*blockPhase(*by)*c/blockPhase(*bo)).real
    return table

def sChannelTable(blocks):
    """Particle-particle channel, (tau^a x tau^b)(tau^c x tau^d) -> (tau^a tau^c) x (tau^b tau^d)."""
    f=productCoefficients()
    return _realTable(lambda o,x,y:f[x[0],y[0],o[0]]*f[x[1],y[1],o[1]],blocks)

def uChannelTable(blocks):
    """Crossed particle-hole channel, (tau^a x tau^b)(tau^c x tau^d) -> (tau^a tau^c) x (tau^d tau^b)."""
    f=productCoefficients()
    return _realTable(lambda o,x,y:f[x[0],y[0],o[0]]*f[y[1],x[1],o[1]],blocks)

def rpaTable(blocks):
    """Direct particle-hole channel with a closed fermion loop at the intermediate site."""
    def raw(o,x,y):
        if o[0]!=x[0] or o[1]!=y[1]:
            return 0
        return -np.trace(pauli[x[1]]@pauli[y[0]])
    return _realTable(raw,blocks)

def onsiteLeftTable(blocks):
    """Direct particle-hole channel with the on-site vertex attached to the first site."""
    def raw(o,x,y):
        if o[1]!=y[1]:
            return 0
        return _traceFour(o[0],x[0],y[0],x[1])
    return _realTable(raw,blocks)

def onsiteRightTable(blocks):
    """Direct particle-hole channel with the on-site vertex attached to the second site."""
    def raw(o,x,y):
        if o[0]!=x[0]:
            return 0
        return _traceFour(o[1],y[0],x[1],y[1])
    return _realTable(raw,blocks)

def hartreeWeights(blocks):
    return np.array([2.0 if b==(3,3) else 0.0 for b in blocks])

def fockWeights(blocks):
    return np.array([-1.0 if b[0]==b[1] else 0.0 for b in blocks])
