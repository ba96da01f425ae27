import logging
import numpy as np
import h5py
from pffrg.regulators import ScaleProp
from pffrg.vertexSU2 import FrequencyChannel
from pffrg.exceptions import CheckpointIOError

logger=logging.getLogger(__name__)

_componentNames='XYZD'

class Measurement:
    """
    Observable evaluated from the effective action at a given cutoff.

    ...
    Attributes
    ----------
    outputFile : str
        HDF5 file which receives the observable

    minCutoff, maxCutoff : float
        Cutoff range in which the measurement is taken

    deferred : bool
        The measurement is taken in the postprocessing phase

    Methods
    -------
    takeMeasurement(state,isMasterRank)
        Evaluates the observable, the master rank writes it to outputFile
    """
    def __init__(self,context,outputFile,minCutoff=0.0,maxCutoff=np.inf,deferred=False,regulator='litim'):
        self.context=context
        self.outputFile=outputFile
        self.minCutoff=minCutoff
        self.maxCutoff=maxCutoff
        self.deferred=deferred
        self.propagator=ScaleProp(regulator)

    def evaluate(self,state):
        """Observable name and values per representative."""
        raise NotImplementedError

    def takeMeasurement(self,state,isMasterRank):
        observables=self.evaluate(state)
        if isMasterRank:
            self._writeOutfile(state.cutoff,observables)
        return observables

    def _writeOutfile(self,cutoff,observables):
        lattice=self.context.lattice
        try:
            hFile=h5py.File(self.outputFile,'a')
        except OSError as e:
            raise CheckpointIOError('Could not open observable file '+self.outputFile) from e
        with hFile:
            for name,values in observables:
                if name+'/meta' not in hFile:
                    meta=hFile.create_group(name+'/meta')
                    meta.create_dataset('sites',data=np.array([lattice.getSitePosition(r) for r in range(lattice.size)]))
                    meta.create_dataset('rid',data=np.arange(lattice.size))
                data=hFile.require_group(name+'/data')
                k=0
                while 'measurement_%d'%k in data:
                    k+=1
                group=data.create_group('measurement_%d'%k)
                group.attrs['cutoff']=cutoff
                group.create_dataset('data',data=values)
        logger.info('Measured %s at cutoff %g',', '.join(name for name,_ in observables),cutoff)

    def _correlationWeights(self,state):
        """
        Propagator weights of the static correlation on the integration mesh:
        the local term (1/4 pi) int g^2 and the vertex term weights of
        -(1/4 pi^2) int int g(w)^2 g(w')^2 Gamma(w+w',0,w-w').
        """
        mesh,weights=self.context.frequency.integrationMesh()
        g=self.propagator.gF(mesh,state.vertexSingleParticle.values(mesh),state.cutoff)
        local=np.sum(weights*g**2)/(4*np.pi)
        gw=weights*g**2
        vertexWeights=-np.outer(gw,gw).reshape(-1)/(4*np.pi**2)
        wL,wR=np.meshgrid(mesh,mesh,indexing='ij')
        sQ=(wL+wR).reshape(-1)
        uQ=(wL-wR).reshape(-1)
        return local,vertexWeights,sQ,np.zeros_like(sQ),uQ

class CorrelationSU2(Measurement):
    def evaluate(self,state):
        local,vertexWeights,sQ,tQ,uQ=self._correlationWeights(state)
        vertex=state.vertexTwoParticle
        bundleSS,bundleDD=vertex.valueBundles(vertex.generateAccessBuffers(sQ,tQ,uQ,FrequencyChannel.NONE))
        correlationZZ=vertexWeights@bundleSS
        correlationDD=vertexWeights@bundleDD
        correlationZZ[0]+=local
        correlationDD[0]+=local
        return [('SU2CorZZ',correlationZZ),('SU2CorDD',correlationDD)]

class CorrelationBlock(Measurement):
    prefix=''
    components=()

    def evaluate(self,state):
        local,vertexWeights,sQ,tQ,uQ=self._correlationWeights(state)
        vertex=state.vertexTwoParticle
        bundle=vertex.valueBundles(vertex.generateAccessBuffers(sQ,tQ,uQ,FrequencyChannel.NONE))
        observables=[]
        for a,b in self.components:
            x=vertex.blockIndex[4*a+b]
            correlation=vertexWeights@bundle[:,x,:]
            if a==b:
                correlation[0]+=local
            name=self.prefix+_componentNames[a]+_componentNames[b]
            observables.append((name,correlation))
        return observables

class CorrelationXYZ(CorrelationBlock):
    prefix='XYZCor'
    components=[(0,0),(1,1),(2,2),(3,3)]

class CorrelationTRI(CorrelationBlock):
    prefix='TRICor'
    components=[(a,b) for a in range(3) for b in range(3)]+[(3,3)]
