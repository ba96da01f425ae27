import numpy as np
from numba import jit
from pffrg.lattice import SpinComponent
from pffrg.vertexSU2 import FrequencyChannel,AccessBuffer,bufferSize,generateBuffers,expandFrequencyOffsets
from pffrg.exceptions import check

xyzBlocks=[(0,0),(1,1),(2,2),(3,3)]
triBlocks=[(a,b) for a in range(4) for b in range(4)]

@jit(nopython=True)
def accumulateBlockBundles(data,nBlocks,blocks,blockIndex,offsets,weights,signs,exchange,\
        siteRid,sitePermutation,invertedSiteRid,invertedSitePermutation,bundle):
    """
    Value bundles Gamma^{ab}_{0r} of all stored blocks (a,b) and all
    representatives r for every buffer. Site exchange swaps the block
    indices, the lattice symmetry permutes them.
    """
    nSites=len(siteRid)
    for m in range(offsets.shape[0]):
        for x in range(nBlocks):
            for j in range(nSites):
                bundle[m,x,j]=0.0
        for k in range(offsets.shape[1]):
            weight=weights[m,k]
            o=offsets[m,k]
            for x in range(nBlocks):
                a=blocks[x,0]
                b=blocks[x,1]
                for j in range(nSites):
                    if exchange[m]:
                        r=invertedSiteRid[j]
                        pa=invertedSitePermutation[j,b]
                        pb=invertedSitePermutation[j,a]
                    else:
                        r=siteRid[j]
                        pa=sitePermutation[j,a]
                        pb=sitePermutation[j,b]
                    stored=blockIndex[4*pa+pb]
                    if stored<0:
                        continue
                    sign=signs[m,k] if pb==3 else 1
                    bundle[m,x,j]+=sign*weight*data[o+stored*nSites+r]

class VertexBlock:
    """
    Two-particle vertex decomposed into spin blocks Gamma^{ab} with
    a,b in {x,y,z,none}. Blocks with exactly one none index are purely
    imaginary, their imaginary part is stored.

    Values are stored for s>=u>=0 and t>=0 with memory layout
    ((s*(s+1)/2+u)*N+t)*B*L+b*L+r for N frequencies, B blocks and L
    representatives.

    ...
    Attributes
    ----------
    blocks : array_like(int, ndim=2)
        Spin components (a,b) of the stored blocks

    blockIndex : array_like(int, ndim=1)
        Position of block (a,b) at 4*a+b, -1 if the block vanishes

    size : int
        Number of elements

    sizeFrequency : int
        Number of frequency triples N*N*(N+1)/2

    data : array_like(float, ndim=1)
    """
    def __init__(self,context,blocks):
        self.frequency=context.frequency
        self.lattice=context.lattice
        self.blocks=np.array(blocks,dtype=np.int64).reshape(-1,2)
        self.nBlocks=len(self.blocks)
        self.blockIndex=-np.ones(16,dtype=np.int64)
        for x,(a,b) in enumerate(self.blocks):
            self.blockIndex[4*a+b]=x

        N=self.frequency.size
        self.stepLattice=self.lattice.size
        self.stepBlock=self.nBlocks*self.stepLattice
        self.sizeFrequency=N*N*(N+1)//2
        self.size=self.sizeFrequency*self.stepBlock
        self.data=np.zeros(self.size)

    def expandFrequencyIterator(self,iterator):
        check(0<=iterator<self.sizeFrequency,'Frequency iterator out of range')
        sOffset,tOffset,uOffset=expandFrequencyOffsets(self.frequency.size,iterator)
        grid=self.frequency.values
        return grid[sOffset],grid[tOffset],grid[uOffset]

    def expandIterator(self,iterator):
        """(i,s,t,u,s1,s2) of a linear index in [0,size)."""
        check(0<=iterator<self.size,'Vertex iterator out of range')
        frequencyIterator,rest=divmod(iterator,self.stepBlock)
        block,site=divmod(rest,self.stepLattice)
        s,t,u=self.expandFrequencyIterator(frequencyIterator)
        a,b=self.blocks[block]
        return self.lattice.fromParametrization(site),s,t,u,SpinComponent(a),SpinComponent(b)

    def ref(self,iterator):
        check(0<=iterator<self.size,'Vertex iterator out of range')
        return self.data[iterator:iterator+1]

    def generateAccessBuffers(self,sQ,tQ,uQ,channel=FrequencyChannel.NONE):
        sQ=np.ascontiguousarray(sQ,dtype=np.float64)
        tQ=np.ascontiguousarray(tQ,dtype=np.float64)
        uQ=np.ascontiguousarray(uQ,dtype=np.float64)
        nSupport=bufferSize(channel)
        offsets=np.zeros((len(sQ),nSupport),dtype=np.int64)
        weights=np.zeros((len(sQ),nSupport))
        signs=np.zeros((len(sQ),nSupport),dtype=np.int64)
        exchange=np.zeros(len(sQ),dtype=np.bool_)
        generateBuffers(self.frequency.values,self.stepBlock,sQ,tQ,uQ,int(channel),offsets,weights,signs,exchange)
        return offsets,weights,signs,exchange

    def generateAccessBuffer(self,s,t,u,channel=FrequencyChannel.NONE):
        offsets,weights,signs,exchange=self.generateAccessBuffers([s],[t],[u],channel)
        return AccessBuffer(offsets[0],weights[0],signs[0],exchange[0])

    def value(self,i1,i2,s,t,u,s1,s2,channel=FrequencyChannel.NONE):
        """Interpolated block (s1,s2) between the data sites i1 and i2, imaginary part for mixed blocks."""
        buffer=self.generateAccessBuffer(s,t,u,channel)
        if buffer.siteExchange:
            i1,i2=i2,i1
            s1,s2=s2,s1
        rid,p1,p2=self.lattice.symmetryTransform(i1,i2,SpinComponent(s1),SpinComponent(s2))
        stored=self.blockIndex[4*int(p1)+int(p2)]
        if stored<0:
            return 0.0
        values=self.data[buffer.offsets+stored*self.stepLattice+rid]
        if p2==SpinComponent.NONE:
            values=values*buffer.signFlag
        return float(np.dot(buffer.weights,values))

    def valueBundle(self,buffer):
        """Blocks Gamma^{ab}_{0r} of all stored blocks and representatives, shape (nBlocks,lattice.size)."""
        buffers=(buffer.offsets.reshape(1,-1),buffer.weights.reshape(1,-1),buffer.signFlag.reshape(1,-1),np.array([buffer.siteExchange]))
        return self.valueBundles(buffers)[0]

    def valueBundles(self,buffers):
        offsets,weights,signs,exchange=buffers
        bundle=np.zeros((len(offsets),self.nBlocks,self.lattice.size))
        accumulateBlockBundles(self.data,self.nBlocks,self.blocks,self.blockIndex,offsets,weights,signs,exchange,\
            self.lattice.siteRid,self.lattice.sitePermutation,self.lattice.invertedSiteRid,self.lattice.invertedSitePermutation,bundle)
        return bundle

    def isDiverged(self):
        return bool(np.isnan(self.data).any())
