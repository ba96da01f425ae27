import logging
import numpy as np
from pffrg.frgCore import FrgCore
from pffrg.effectiveAction import EffectiveActionSU2
from pffrg.vertexSU2 import FrequencyChannel
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

class FrgCoreSU2(FrgCore):
    """
    Flow equations of SU(2) symmetric spin models in the spin and density
    channel decomposition of the two-particle vertex.

    ...
    Attributes
    ----------
    spinLength : float
        Spin length S, closed fermion loops are weighted by 2S

    normalization : float
        The initial spin vertex is J/normalization
    """
    normalization=4.0

    def __init__(self,context,spinModel,measurements,options=None,loadManager=None):
        options=dict(options or {})
        self.spinLength=self._floatOption(options,'spinLength',0.5)
        if self.spinLength<=0:
            raise ConfigurationError('Spin length must be positive')
        super().__init__(context,measurements,options,loadManager)
        if not spinModel.isHeisenberg():
            raise ConfigurationError('SU2 symmetry requires Heisenberg interactions')

        self.flowingFunctional=EffectiveActionSU2.fromSpinModel(context,context.cutoff[0],spinModel,self.normalization)
        self.flow=EffectiveActionSU2(context)

        lattice=context.lattice
        self._rangeMultiplicity=np.bincount(lattice.symmetryRid[0,lattice.range(0)],minlength=lattice.size).astype(np.float64)
        overlaps=[lattice.overlap(r) for r in range(lattice.size)]
        self._overlapRid1=np.concatenate([o.rid1 for o in overlaps])
        self._overlapRid2=np.concatenate([o.rid2 for o in overlaps])
        self._overlapOwner=np.concatenate([np.full(len(o),r,dtype=np.int64) for r,o in enumerate(overlaps)])

        vertex=self.flow.vertexTwoParticle
        self._stackSingleParticle=self.loadManager.registerStack(context.frequency.size,self._calculateVertexSingleParticle,\
            [self.flow.vertexSingleParticle.data])
        self._stackTwoParticle=self.loadManager.registerStack(vertex.sizeFrequency,self._calculateVertexTwoParticle,\
            [vertex.dataSS,vertex.dataDD])
        self._registerFinalizeStacks()
        logger.info('Initialized SU2 core with spin length %g',self.spinLength)

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
        _,hartreeDD=self._bundles(w+wp,zeros,w-wp,FrequencyChannel.NONE)
        fockSS,fockDD=self._bundles(w+wp,w-wp,zeros,FrequencyChannel.NONE)

        integrand=2*(2*self.spinLength)*(hartreeDD@self._rangeMultiplicity)-3*fockSS[:,0]-fockDD[:,0]
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
        aSS,aDD=self._bundles(sVec,w1p-w,w1p-s+w,FrequencyChannel.S)
        bSS,bDD=self._bundles(sVec,w-w1,w-w2,FrequencyChannel.S)
        flowSS=p@(-2*aSS*bSS+aSS*bDD+aDD*bSS)
        flowDD=p@(3*aSS*bSS+aDD*bDD)

        #u channel
        p=self._meshWeights*self._bubble(w,w+u)
        aSS,aDD=self._bundles(w1p+w,w1p-w-u,uVec,FrequencyChannel.U)
        bSS,bDD=self._bundles(w+u+w2p,w+u-w1,uVec,FrequencyChannel.U)
        flowSS+=p@(2*aSS*bSS+aSS*bDD+aDD*bSS)
        flowDD+=p@(3*aSS*bSS+aDD*bDD)

        #t channel
        p=self._meshWeights*self._bubble(w,w+t)
        aSS,aDD=self._bundles(w1p+w,tVec,w1p-w-t,FrequencyChannel.T)
        bSS,bDD=self._bundles(w+t+w2p,tVec,w+t-w2,FrequencyChannel.T)
        loop=-2*(2*self.spinLength)
        rid1,rid2,owner=self._overlapRid1,self._overlapRid2,self._overlapOwner
        size=self.context.lattice.size
        flowSS+=loop*np.bincount(owner,weights=p@(aSS[:,rid1]*bSS[:,rid2]),minlength=size)
        flowDD+=loop*np.bincount(owner,weights=p@(aDD[:,rid1]*bDD[:,rid2]),minlength=size)
        flowSS+=p@(aSS*(bDD[:,[0]]-bSS[:,[0]])+(aDD[:,[0]]-aSS[:,[0]])*bSS)
        flowDD+=p@(aDD*(bDD[:,[0]]+3*bSS[:,[0]])+(aDD[:,[0]]+3*aSS[:,[0]])*bDD)
        return flowSS,flowDD
