import logging
import numpy as np
from pffrg.loadManager import LoadManager
from pffrg.regulators import ScaleProp
from pffrg.inputParser import stringToFloat

logger=logging.getLogger(__name__)

class FrgCore:
    """
    Base class of the flow equation kernels of one symmetry class.

    ...
    Attributes
    ----------
    flowingFunctional : EffectiveAction
        The effective action at the current cutoff

    flow : EffectiveAction
        Derivative of the effective action with respect to the cutoff

    measurements : list of Measurement
        Measurements taken along the flow

    normalization : float
        Energy normalization of the initial conditions

    deferMeasurements : bool
        Defer all measurements to the postprocessing phase

    Methods
    -------
    computeStep()
        Computes the flow from the current effective action

    finalizeStep(newCutoff)
        Euler update of the effective action to newCutoff

    takeMeasurements(postprocessing,dataFile)
        Invokes the measurements active at the current cutoff
    """
    normalization=1.0

    def __init__(self,context,measurements,options=None,loadManager=None):
        options=dict(options or {})
        self.context=context
        self.measurements=list(measurements)
        threads=options.pop('threads',0)
        self.loadManager=loadManager if loadManager is not None else LoadManager(threads=int(stringToFloat(threads)) if isinstance(threads,str) else threads)
        self.propagator=ScaleProp(options.pop('regulator','litim'))
        for key in sorted(options):
            logger.warning('Ignoring unknown option \'%s\'',key)
        self.deferMeasurements=False
        self.flowingFunctional=None
        self.flow=None
        self._cutoffStep=0.0
        self._finalizeStacks=[]

    @staticmethod
    def _floatOption(options,key,default):
        value=options.pop(key,default)
        if isinstance(value,str):
            return stringToFloat(value)
        return float(value)

    def _registerFinalizeStacks(self):
        """One element-wise Euler update stack per dataset of the effective action."""
        rowsTwoParticle=self.flowingFunctional.vertexTwoParticle.sizeFrequency
        for (name,stateData),(_,flowData) in zip(self.flowingFunctional.datasets(),self.flow.datasets()):
            rows=self.context.frequency.size if name=='v2' else rowsTwoParticle
            stateRows=stateData.reshape(rows,-1)
            flowRows=flowData.reshape(rows,-1)
            def worker(i,stateRows=stateRows,flowRows=flowRows):
                return (stateRows[i]+self._cutoffStep*flowRows[i],)
            self._finalizeStacks.append(self.loadManager.registerStack(rows,worker,[stateData]))

    def computeStep(self):
        raise NotImplementedError

    def finalizeStep(self,newCutoff):
        self._cutoffStep=newCutoff-self.flowingFunctional.cutoff
        self.loadManager.run(self._finalizeStacks)
        self.flowingFunctional.cutoff=newCutoff

    def postprocessingRequired(self):
        return self.deferMeasurements or any(m.deferred for m in self.measurements)

    def takeMeasurements(self,postprocessing=False,dataFile=None):
        """
        Parameters
        ----------
        postprocessing : bool
            Only deferred measurements are taken in the postprocessing
            phase, only measurements which are not deferred otherwise

        dataFile : str, optional
            Data file which receives a checkpoint for later postprocessing
        """
        cutoff=self.flowingFunctional.cutoff
        isMasterRank=self.loadManager.isMasterRank()
        active=[m for m in self.measurements if m.minCutoff<=cutoff<=m.maxCutoff]
        if postprocessing:
            for m in active:
                if self.deferMeasurements or m.deferred:
                    m.takeMeasurement(self.flowingFunctional,isMasterRank)
        else:
            for m in active:
                if not self.deferMeasurements and not m.deferred:
                    m.takeMeasurement(self.flowingFunctional,isMasterRank)
            if self.postprocessingRequired() and isMasterRank and dataFile is not None:
                self.flowingFunctional.writeCheckpoint(dataFile,append=True)

    def _meshPropagators(self):
        """Integration mesh, weights including 1/(2 pi) and the propagators of the current step."""
        mesh,weights=self.context.frequency.integrationMesh()
        cutoff=self.flowingFunctional.cutoff
        sE=self.flowingFunctional.vertexSingleParticle.values(mesh)
        self._mesh=mesh
        self._meshWeights=weights/(2*np.pi)
        self._meshS=self.propagator.sF(mesh,sE,cutoff)

    def _bubble(self,wL,wR):
        sigma=self.flowingFunctional.vertexSingleParticle
        return self.propagator.bubble(wL,wR,sigma.values(wL),sigma.values(wR),self.flowingFunctional.cutoff)
