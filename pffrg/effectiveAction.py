import re
import logging
import numpy as np
import h5py
from pffrg.vertexSingleParticle import SingleParticleVertex
from pffrg.vertexSU2 import VertexSU2
from pffrg.vertexBlock import VertexBlock,xyzBlocks,triBlocks
from pffrg.exceptions import CheckpointIOError

logger=logging.getLogger(__name__)

_checkpointName=re.compile(r'^checkpoint_(\d+)$')

def _checkpointIds(hFile):
    ids=[]
    for name in hFile.keys():
        match=_checkpointName.match(name)
        if match is not None and isinstance(hFile[name],h5py.Group):
            ids.append(int(match.group(1)))
    return sorted(ids)

def _cutoffAttribute(group):
    value=group.attrs.get('cutoff')
    if value is None:
        return None
    return float(np.asarray(value).reshape(-1)[0])

class EffectiveAction:
    """
    Cutoff, self-energy and two-particle vertex of one symmetry class.

    ...
    Attributes
    ----------
    cutoff : float
        Current value of the cutoff

    vertexSingleParticle : SingleParticleVertex

    Methods
    -------
    writeCheckpoint(dataFilePath,append=False)
        Stores the effective action as a new checkpoint group

    readCheckpoint(dataFilePath,checkpointId=-1)
        Loads a checkpoint group, the last one if checkpointId is -1

    isDiverged()
        True if any vertex value is NaN
    """
    def __init__(self,context):
        self.context=context
        self.cutoff=0.0
        self.vertexSingleParticle=SingleParticleVertex(context)

    def _vertexDatasets(self):
        """Names and arrays of the two-particle datasets."""
        raise NotImplementedError

    def datasets(self):
        return [('v2',self.vertexSingleParticle.data)]+self._vertexDatasets()

    def _existingCheckpoint(self,dataFilePath):
        if not h5py.is_hdf5(dataFilePath):
            return False
        try:
            with h5py.File(dataFilePath,'r') as hFile:
                for name in hFile.keys():
                    if isinstance(hFile[name],h5py.Group) and _cutoffAttribute(hFile[name])==self.cutoff:
                        return True
        except OSError as e:
            raise CheckpointIOError('Could not open data file '+dataFilePath+' for reading') from e
        return False

    def writeCheckpoint(self,dataFilePath,append=False):
        """
        Parameters
        ----------
        dataFilePath : str
            HDF5 output file

        append : bool
            Add a group to an existing file instead of truncating it

        Returns
        -------
        checkpointId : int
            Id of the new group, -1 if a group at the same cutoff exists
        """
        append=append and h5py.is_hdf5(dataFilePath)
        if append and self._existingCheckpoint(dataFilePath):
            logger.warning('Found existing checkpoint at cutoff %g. Skipping checkpoint.',self.cutoff)
            return -1

        try:
            hFile=h5py.File(dataFilePath,'a' if append else 'w')
        except OSError as e:
            raise CheckpointIOError('Could not open data file '+dataFilePath+' for writing') from e

        with hFile:
            checkpointId=0
            while 'checkpoint_%d'%checkpointId in hFile:
                checkpointId+=1
            group=hFile.create_group('checkpoint_%d'%checkpointId)
            group.attrs.create('cutoff',np.array([self.cutoff]))
            group.create_dataset('cutoff',data=np.array([self.cutoff]))
            for name,data in self.datasets():
                group.create_dataset(name,data=data)
        logger.debug('Wrote checkpoint_%d at cutoff %g to %s',checkpointId,self.cutoff,dataFilePath)
        return checkpointId

    def readCheckpoint(self,dataFilePath,checkpointId=-1):
        try:
            hFile=h5py.File(dataFilePath,'r')
        except OSError as e:
            raise CheckpointIOError('Could not open data file '+dataFilePath+' for reading') from e

        with hFile:
            if checkpointId<0:
                ids=_checkpointIds(hFile)
                if len(ids)==0:
                    return False
                checkpointId=ids[-1]
            name='checkpoint_%d'%checkpointId
            if name not in hFile:
                return False
            group=hFile[name]

            for datasetName,data in [('cutoff',None)]+self.datasets():
                if datasetName not in group:
                    return False
                if data is not None and group[datasetName].shape!=data.shape:
                    raise CheckpointIOError('Dataset %s of %s does not match the vertex dimensions'%(datasetName,name))

            self.cutoff=float(group['cutoff'][0])
            for datasetName,data in self.datasets():
                group[datasetName].read_direct(data)
        logger.debug('Read %s at cutoff %g from %s',name,self.cutoff,dataFilePath)
        return True

    def isDiverged(self):
        return any(bool(np.isnan(data).any()) for _,data in self.datasets())

class EffectiveActionSU2(EffectiveAction):
    def __init__(self,context):
        super().__init__(context)
        self.vertexTwoParticle=VertexSU2(context)

    def _vertexDatasets(self):
        return [('v4ss',self.vertexTwoParticle.dataSS),('v4dd',self.vertexTwoParticle.dataDD)]

    @classmethod
    def fromSpinModel(cls,context,cutoff,spinModel,normalization):
        """Initial condition, the spin channel carries J/normalization at every frequency."""
        action=cls(context)
        action.cutoff=cutoff
        vertex=action.vertexTwoParticle
        spin=vertex.dataSS.reshape(vertex.sizeFrequency,vertex.stepLattice)
        for rid,coupling in spinModel.interactions:
            spin[:,rid]+=coupling[0,0]/normalization
        return action

class EffectiveActionBlock(EffectiveAction):
    blocks=()

    def __init__(self,context):
        super().__init__(context)
        self.vertexTwoParticle=VertexBlock(context,self.blocks)

    def _vertexDatasets(self):
        return [('v4',self.vertexTwoParticle.data)]

    @classmethod
    def fromSpinModel(cls,context,cutoff,spinModel,normalization,scale=1.0):
        """Initial condition, spin blocks ab carry scale*J_ab/normalization at every frequency."""
        action=cls(context)
        action.cutoff=cutoff
        vertex=action.vertexTwoParticle
        data=vertex.data.reshape(vertex.sizeFrequency,vertex.nBlocks,vertex.stepLattice)
        for rid,coupling in spinModel.interactions:
            for x,(a,b) in enumerate(vertex.blocks):
                if a==3 or b==3:
                    continue
                data[:,x,rid]+=scale*coupling[a,b]/normalization
        return action

class EffectiveActionXYZ(EffectiveActionBlock):
    blocks=xyzBlocks

class EffectiveActionTRI(EffectiveActionBlock):
    blocks=triBlocks

    @classmethod
    def fromSpinModel(cls,context,cutoff,spinModel,normalization,scale=0.25):
        return super().fromSpinModel(context,cutoff,spinModel,normalization,scale)
