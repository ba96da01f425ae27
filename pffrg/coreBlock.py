import logging
import numpy as np
import pffrg.spinAlgebra as spinA
from pffrg.frgCore import FrgCore
from pffrg.effectiveAction import EffectiveActionXYZ,EffectiveActionTRI
from pffrg.vertexSU2 import FrequencyChannel
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

class FrgCoreBlock(FrgCore):
    """
    Flow equations for two-particle vertices in the spin block
    decomposition Gamma^{ab}, a,b in {x,y,z,none}. The channel
    contractions are tabulated from the Pauli algebra.

    ...
    Attributes
    ----------
    blocks : list of (int,int)
        Stored spin blocks

    tables : dict
        Contraction tables of the s, u and t channel diagrams
    """
    effectiveAction=None
    initialScale=1.0

    def __init__(self,context,spinModel,measurements,options=None,loadManager=None):
        super().__init__(context,measurements,options,loadManager)
        self._checkModel(spinModel)
        self.flowingFunctional=self.effectiveAction.fromSpinModel(context,context.cutoff[0],spinModel,self.normalization,self.initialScale)
        self.flow=self.effectiveAction(context)

        vertex=self.flow.vertexTwoParticle
        self.blocks=[tuple(b) for b in vertex.blocks]
        self.tables={'s':spinA.sChannelTable(self.blocks),'u':spinA.uChannelTable(self.blocks),'rpa':spinA.rpaTable(self.blocks),\
            'left':spinA.onsiteLeftTable(self.blocks),'right':spinA.onsiteRightTable(self.blocks)}
        self._hartree=spinA.hartreeWeights(self.blocks)
        self._fock=spinA.fockWeights(self.blocks)

        lattice=context.lattice
        self._rangeMultiplicity=np.bincount(lattice.symmetryRid[0,lattice.range(0)],minlength=lattice.size).astype(np.float64)
        overlaps=[lattice.overlap(r) for r in range(lattice.size)]
        self._overlapRid1=np.concatenate([o.rid1 for o in overlaps])
        self._overlapRid2=np.concatenate([o.rid2 for o in overlaps])
        self._overlapOwner=np.concatenate([np.full(len(o),r,dtype=np.int64) for r,o in enumerate(overlaps)])
        self._overlapBlocks1=self._permutedBlocks(np.concatenate([o.permutation1 for o in overlaps]))
        self._overlapBlocks2=self._permutedBlocks(np.concatenate([o.permutation2 for o in overlaps]))
        self._onsiteBlocks=self._permutedBlocks(np.array([lattice.symmetryPermutation[r,r] for r in range(lattice.size)]))

        self._stackSingleParticle=self.loadManager.registerStack(context.frequency.size,self._calculateVertexSingleParticle,\
            [self.flow.vertexSingleParticle.data])
        self._stackTwoParticle=self.loadManager.registerStack(vertex.sizeFrequency,self._calculateVertexTwoParticle,[vertex.data])
        self._registerFinalizeStacks()
        logger.info('Initialized %s core with %d spin blocks',self.__class__.__name__,len(self.blocks))

    def _checkModel(self,spinModel):
        pass

    def _permutedBlocks(self,permutations):
        """Stored position of block (pi(a),pi(b)) for every permutation pi and block (a,b), nBlocks where it vanishes."""
        vertex=self.flow.vertexTwoParticle
        index=np.zeros((len(permutations),vertex.nBlocks),dtype=np.int64)
        for x,(a,b) in enumerate(self.blocks):
            stored=vertex.blockIndex[4*permutations[:,a]+permutations[:,b]]
            index[:,x]=np.where(stored<0,vertex.nBlocks,stored)
        return index

    def computeStep(self):
        self.flow.cutoff=self.flowingFunctional.cutoff
        self._meshPropagators()
        self.loadManager.run([self._stackSingleParticle,self._stackTwoParticle])

    def _bundles(self,sQ,tQ,uQ,channel):
        vertex=self.flowingFunctional.vertexTwoParticle
        return vertex.valueBundles(vertex.generateAccessBuffers(sQ,tQ,uQ,channel))

    def _calculateVertexSingleParticle(self,iterator):
        w=self.context.frequency.values[iterator]
        wp=self._mesh
        zeros=np.zeros_like(wp)
        hartree=self._bundles(w+wp,zeros,w-wp,FrequencyChannel.NONE)
        fock=self._bundles(w+wp,w-wp,zeros,FrequencyChannel.NONE)

        integrand=np.einsum('x,wxr,r->w',self._hartree,hartree,self._rangeMultiplicity)+fock[:,:,0]@self._fock
        return (np.sum(self._meshWeights*self._meshS*integrand),)

    def _calculateVertexTwoParticle(self,iterator):
        s,t,u=self.flowingFunctional.vertexTwoParticle.expandFrequencyIterator(iterator)
        w=self._mesh
        w1p=(s+t+u)/2
        w2p=(s-t-u)/2
        w1=(s-t+u)/2
        w2=(s+t-u)/2
        sVec=np.full_like(w,s)
        tVec=np.full_like(w,t)
        uVec=np.full_like(w,u)

        #s channel
        p=self._meshWeights*self._bubble(w,s-w)
        a=self._bundles(sVec,w1p-w,w1p-s+w,FrequencyChannel.S)
        b=self._bundles(sVec,w-w1,w-w2,FrequencyChannel.S)
        flow=np.einsum('oxy,w,wxr,wyr->or',self.tables['s'],p,a,b,optimize=True)

        #u channel
        p=self._meshWeights*self._bubble(w,w+u)
        a=self._bundles(w1p+w,w1p-w-u,uVec,FrequencyChannel.U)
        b=self._bundles(w+u+w2p,w+u-w1,uVec,FrequencyChannel.U)
        flow+=np.einsum('oxy,w,wxr,wyr->or',self.tables['u'],p,a,b,optimize=True)

        #t channel
        p=self._meshWeights*self._bubble(w,w+t)
        a=self._bundles(w1p+w,tVec,w1p-w-t,FrequencyChannel.T)
        b=self._bundles(w+t+w2p,tVec,w+t-w2,FrequencyChannel.T)
        zeroBlock=np.zeros((len(w),1,a.shape[2]))
        aPad=np.concatenate([a,zeroBlock],axis=1)
        bPad=np.concatenate([b,zeroBlock],axis=1)

        aOverlap=aPad[:,self._overlapBlocks1,self._overlapRid1[:,None]]
        bOverlap=bPad[:,self._overlapBlocks2,self._overlapRid2[:,None]]
        rpa=np.einsum('oxy,w,wex,wey->eo',self.tables['rpa'],p,aOverlap,bOverlap,optimize=True)
        accumulated=np.zeros((a.shape[2],len(self.blocks)))
        np.add.at(accumulated,self._overlapOwner,rpa)
        flow+=accumulated.T

        bOnsite=bPad[:,self._onsiteBlocks,0]
        flow+=np.einsum('oxy,w,wx,wyr->or',self.tables['left'],p,a[:,:,0],b,optimize=True)
        flow+=np.einsum('oxy,w,wxr,wry->or',self.tables['right'],p,a,bOnsite,optimize=True)
        return (flow.reshape(-1),)

class FrgCoreXYZ(FrgCoreBlock):
    """Flow equations of spin models with diagonal interactions J_xx, J_yy, J_zz."""
    normalization=4.0
    effectiveAction=EffectiveActionXYZ

    def _checkModel(self,spinModel):
        if not spinModel.isDiagonal():
            raise ConfigurationError('XYZ symmetry requires diagonal interactions')

class FrgCoreTRI(FrgCoreBlock):
    """Flow equations of time-reversal invariant spin models with general two-spin interactions."""
    normalization=1.0
    initialScale=0.25
    effectiveAction=EffectiveActionTRI
