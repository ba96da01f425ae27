from enum import IntEnum
import numpy as np
from numba import jit
from pffrg.frequencyGrid import gridOffset,gridInterpolate
from pffrg.exceptions import check

class FrequencyChannel(IntEnum):
    S=0
    T=1
    U=2
    ALL=3
    NONE=4

class Symmetry(IntEnum):
    SPIN=0
    DENSITY=1

def bufferSize(channel):
    """Number of support points of an access buffer for the given channel."""
    check(channel in (FrequencyChannel.S,FrequencyChannel.T,FrequencyChannel.U,FrequencyChannel.ALL,FrequencyChannel.NONE),\
        'Invalid frequency channel %s'%str(channel))
    if channel==FrequencyChannel.NONE:
        return 8
    elif channel==FrequencyChannel.ALL:
        return 1
    return 4

@jit(nopython=True)
def canonicalArguments(s,t,u):
    """Maps (s,t,u) into the sector s,t,u>=0, returns the site exchange flag."""
    exchange=False
    if s<0 and u<0:
        s=-s
        u=-u
    elif s<0:
        s=-s
        exchange=True
    elif u<0:
        u=-u
        exchange=True
    if t<0:
        t=-t
    return s,t,u,exchange

@jit(nopython=True)
def _axisSupport(grid,w,exact):
    if exact:
        o=gridOffset(grid,w)
        return o,o,0.0
    return gridInterpolate(grid,w)

@jit(nopython=True)
def frequencyOffset(nFreq,stride,sOffset,tOffset,uOffset):
    """Memory offset of the frequency triple and -1 if s and u had to be swapped."""
    if sOffset<uOffset:
        return stride*((uOffset*(uOffset+1)//2+sOffset)*nFreq+tOffset),-1
    return stride*((sOffset*(sOffset+1)//2+uOffset)*nFreq+tOffset),1

@jit(nopython=True)
def generateBuffers(grid,stride,sQ,tQ,uQ,channel,offsets,weights,signs,exchange):
    """
    Fills one access buffer per frequency triple (sQ[m],tQ[m],uQ[m]).
    Axes held exactly on the grid by channel contribute a single support
    point, the remaining axes are interpolated linearly.
    """
    nFreq=len(grid)
    exactS=channel==0 or channel==3
    exactT=channel==1 or channel==3
    exactU=channel==2 or channel==3
    nSupport=offsets.shape[1]
    for m in range(len(sQ)):
        s,t,u,ex=canonicalArguments(sQ[m],tQ[m],uQ[m])
        exchange[m]=ex
        lowerS,upperS,biasS=_axisSupport(grid,s,exactS)
        lowerT,upperT,biasT=_axisSupport(grid,t,exactT)
        lowerU,upperU,biasU=_axisSupport(grid,u,exactU)
        for k in range(nSupport):
            bit=0
            bS=0
            bT=0
            bU=0
            if not exactS:
                bS=(k>>bit)&1
                bit+=1
            if not exactT:
                bT=(k>>bit)&1
                bit+=1
            if not exactU:
                bU=(k>>bit)&1
            oS=upperS if bS else lowerS
            oT=upperT if bT else lowerT
            oU=upperU if bU else lowerU
            wS=biasS if bS else 1-biasS
            wT=biasT if bT else 1-biasT
            wU=biasU if bU else 1-biasU
            o,sign=frequencyOffset(nFreq,stride,oS,oT,oU)
            weights[m,k]=wS*wT*wU
            offsets[m,k]=o
            signs[m,k]=sign

@jit(nopython=True)
def accumulateBundles(dataSS,dataDD,offsets,weights,signs,exchange,siteRid,invertedSiteRid,bundleSS,bundleDD):
    """
    Value bundles Gamma_{0r} of all representatives r for every buffer.
    The support points are visited in the outer loop, the representatives
    in the inner loop.
    """
    nSites=len(siteRid)
    for m in range(offsets.shape[0]):
        sites=invertedSiteRid if exchange[m] else siteRid
        for j in range(nSites):
            bundleSS[m,j]=0.0
            bundleDD[m,j]=0.0
        for k in range(offsets.shape[1]):
            weight=weights[m,k]
            signedWeight=signs[m,k]*weight
            o=offsets[m,k]
            for j in range(nSites):
                bundleSS[m,j]+=weight*dataSS[o+sites[j]]
                bundleDD[m,j]+=signedWeight*dataDD[o+sites[j]]

def expandFrequencyOffsets(nFreq,iterator):
    """Grid offsets (s,t,u) of a frequency linear index, s>=u."""
    su,tOffset=divmod(iterator,nFreq)
    sOffset=int((np.sqrt(8*su+1)-1)//2)
    while sOffset*(sOffset+1)//2>su:
        sOffset-=1
    while (sOffset+1)*(sOffset+2)//2<=su:
        sOffset+=1
    return sOffset,tOffset,su-sOffset*(sOffset+1)//2

class AccessBuffer:
    """
    Support points of an interpolated vertex access at one frequency triple.

    ...
    Attributes
    ----------
    offsets : array_like(int, ndim=1)
        Memory offsets into the frequency slab of the vertex

    weights : array_like(float, ndim=1)
        Interpolation weights of the support points

    signFlag : array_like(int, ndim=1)
        -1 for support points stored with s and u exchanged

    siteExchange : bool
        The vertex is evaluated with its lattice sites exchanged
    """
    def __init__(self,offsets,weights,signFlag,siteExchange):
        self.offsets=offsets
        self.weights=weights
        self.signFlag=signFlag
        self.siteExchange=bool(siteExchange)

    def __len__(self):
        return len(self.offsets)

class VertexSU2:
    """
    Two-particle vertex of SU(2) symmetric spin models, decomposed into
    a spin and a density channel.

    Values are stored for s>=u>=0 and t>=0. The memory layout is
    frequency major, the representative is the fastest index:
    (s*(s+1)/2+u)*N*L+t*L+r for N frequencies and L representatives.

    ...
    Attributes
    ----------
    size : int
        Number of elements per channel

    sizeFrequency : int
        Number of frequency triples N*N*(N+1)/2

    dataSS, dataDD : array_like(float, ndim=1)
        Spin and density channel

    Methods
    -------
    value(i1,i2,s,t,u,symmetry,channel)
        Interpolated vertex value for two data sites

    valueLocal(symmetry,buffer)
        Vertex value of the reference site pair (0,0)

    valueBundle(buffer)
        Vertex values Gamma_{0r} for all representatives r

    generateAccessBuffer(s,t,u,channel)
        Access buffer for one frequency triple

    generateAccessBuffers(sQ,tQ,uQ,channel)
        Access buffers for arrays of frequency triples
    """
    def __init__(self,context):
        self.frequency=context.frequency
        self.lattice=context.lattice
        N=self.frequency.size
        self.stepLattice=self.lattice.size
        self.stepLatticeT=self.stepLattice*N
        self.sizeFrequency=N*N*(N+1)//2
        self.size=self.lattice.size*self.sizeFrequency
        self.dataSS=np.zeros(self.size)
        self.dataDD=np.zeros(self.size)

    def data(self,symmetry):
        if symmetry==Symmetry.SPIN:
            return self.dataSS
        elif symmetry==Symmetry.DENSITY:
            return self.dataDD
        check(False,'Invalid vertex symmetry %s'%str(symmetry))

    def expandFrequencyIterator(self,iterator):
        """(s,t,u) of a linear index in [0,sizeFrequency)."""
        check(0<=iterator<self.sizeFrequency,'Frequency iterator out of range')
        sOffset,tOffset,uOffset=expandFrequencyOffsets(self.frequency.size,iterator)
        grid=self.frequency.values
        return grid[sOffset],grid[tOffset],grid[uOffset]

    def expandIterator(self,iterator):
        """(i,s,t,u) of a linear index in [0,size)."""
        check(0<=iterator<self.size,'Vertex iterator out of range')
        frequencyIterator,site=divmod(iterator,self.stepLattice)
        s,t,u=self.expandFrequencyIterator(frequencyIterator)
        return self.lattice.fromParametrization(site),s,t,u

    def ref(self,iterator,symmetry):
        check(0<=iterator<self.size,'Vertex iterator out of range')
        return self.data(symmetry)[iterator:iterator+1]

    def generateAccessBuffers(self,sQ,tQ,uQ,channel=FrequencyChannel.NONE):
        sQ=np.ascontiguousarray(sQ,dtype=np.float64)
        tQ=np.ascontiguousarray(tQ,dtype=np.float64)
        uQ=np.ascontiguousarray(uQ,dtype=np.float64)
        nSupport=bufferSize(channel)
        offsets=np.zeros((len(sQ),nSupport),dtype=np.int64)
        weights=np.zeros((len(sQ),nSupport))
        signs=np.zeros((len(sQ),nSupport),dtype=np.int64)
        exchange=np.zeros(len(sQ),dtype=np.bool_)
        generateBuffers(self.frequency.values,self.stepLattice,sQ,tQ,uQ,int(channel),offsets,weights,signs,exchange)
        return offsets,weights,signs,exchange

    def generateAccessBuffer(self,s,t,u,channel=FrequencyChannel.NONE):
        offsets,weights,signs,exchange=self.generateAccessBuffers([s],[t],[u],channel)
        return AccessBuffer(offsets[0],weights[0],signs[0],exchange[0])

    def _accessValue(self,siteOffset,symmetry,buffer):
        data=self.data(symmetry)
        values=data[buffer.offsets+siteOffset]
        if symmetry==Symmetry.DENSITY:
            values=values*buffer.signFlag
        return float(np.dot(buffer.weights,values))

    def value(self,i1,i2,s,t,u,symmetry,channel=FrequencyChannel.NONE):
        buffer=self.generateAccessBuffer(s,t,u,channel)
        return self.valueBuffer(i1,i2,symmetry,buffer)

    def valueBuffer(self,i1,i2,symmetry,buffer):
        if buffer.siteExchange:
            siteOffset=self.lattice.symmetryTransform(i2,i1)
        else:
            siteOffset=self.lattice.symmetryTransform(i1,i2)
        return self._accessValue(siteOffset,symmetry,buffer)

    def valueLocal(self,symmetry,buffer):
        return self._accessValue(0,symmetry,buffer)

    def valueBundle(self,buffer,bundleSS=None,bundleDD=None):
        """
        Parameters
        ----------
        buffer : AccessBuffer
            Support points of the frequency arguments

        bundleSS, bundleDD : array_like(float, ndim=1), optional
            Output arrays of length lattice.size

        Returns
        -------
        bundleSS, bundleDD : array_like(float, ndim=1)
            Spin and density vertex Gamma_{0r} for every representative r
        """
        if bundleSS is None:
            bundleSS=np.zeros(self.lattice.size)
        if bundleDD is None:
            bundleDD=np.zeros(self.lattice.size)
        outSS=bundleSS.reshape(1,-1)
        outDD=bundleDD.reshape(1,-1)
        accumulateBundles(self.dataSS,self.dataDD,buffer.offsets.reshape(1,-1),buffer.weights.reshape(1,-1),\
            buffer.signFlag.reshape(1,-1),np.array([buffer.siteExchange]),self.lattice.siteRid,self.lattice.invertedSiteRid,outSS,outDD)
        return bundleSS,bundleDD

    def valueBundles(self,buffers):
        """Bundles for every buffer of generateAccessBuffers, arrays of shape (len(sQ),lattice.size)."""
        offsets,weights,signs,exchange=buffers
        bundleSS=np.zeros((len(offsets),self.lattice.size))
        bundleDD=np.zeros((len(offsets),self.lattice.size))
        accumulateBundles(self.dataSS,self.dataDD,offsets,weights,signs,exchange,\
            self.lattice.siteRid,self.lattice.invertedSiteRid,bundleSS,bundleDD)
        return bundleSS,bundleDD

    def isDiverged(self):
        return bool(np.isnan(self.dataSS).any() or np.isnan(self.dataDD).any())
