import os
import time
import logging
from collections import namedtuple
from pffrg.taskFile import TaskFileParser,StatusIdentifier,now
from pffrg.loadManager import LoadManager
from pffrg.inputParser import stringToFloat
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

Fileset=namedtuple('Fileset',['taskFile','obsFile','dataFile','checkpointFile'])

def newFileset(taskFile):
    """Output files which share the base name of the task file."""
    base=os.path.splitext(taskFile)[0]
    return Fileset(taskFile,base+'.obs',base+'.data',base+'.checkpoint')

class SpinParser:
    """
    Outer RG loop: integrates the flow equations along the cutoff grid,
    writes timed checkpoints and replays deferred measurements.

    ...
    Attributes
    ----------
    fileset : Fileset
        Task, observable, data and checkpoint files

    checkpointTime : float
        Minimum time in seconds between two checkpoints

    deferMeasurements : bool
        Defer all measurements to the postprocessing phase

    Methods
    -------
    setup()
        Builds grids, lattice and flow kernel from the task file

    run()
        Sets up the computation from the task file and runs it

    runCore()
        Advances the computation according to its status
    """
    def __init__(self,taskFile,resourcePath=None,checkpointTime=3600.0,forceRestart=False,deferMeasurements=False,\
        debugLattice=False,loadManager=None):
        self.fileset=newFileset(taskFile)
        self.resourcePath=resourcePath
        self.checkpointTime=checkpointTime
        self.forceRestart=forceRestart
        self.deferMeasurements=deferMeasurements
        self.debugLattice=debugLattice
        self.loadManager=loadManager
        self.taskFileParser=None
        self.frgCore=None

    def setup(self):
        """Parses the task file and builds the flow kernel, returns False if only the lattice was requested."""
        ldfPath=os.path.splitext(self.fileset.taskFile)[0]+'.ldf' if self.debugLattice else None
        self.taskFileParser=TaskFileParser(self.fileset.taskFile,self.resourcePath,self.forceRestart,ldfPath)
        if self.debugLattice:
            logger.info('Lattice debug output done. Shutting down.')
            return False

        threads=self.taskFileParser.options.get('threads',0)
        threads=int(stringToFloat(threads)) if isinstance(threads,str) else threads
        if self.loadManager is None:
            self.loadManager=LoadManager(threads=threads)
        else:
            self.loadManager.setThreads(threads)
        self.frgCore=self.taskFileParser.newFrgCore(self.fileset.obsFile,self.loadManager)
        self.frgCore.deferMeasurements=self.deferMeasurements
        return True

    def run(self):
        if not self.setup():
            return
        logger.info('Starting FRG core')
        startTime=time.time()
        self.runCore()
        logger.info('Shutting down core. Computation time %.2f seconds.',time.time()-startTime)

    @property
    def computationStatus(self):
        return self.taskFileParser.computationStatus

    def runCore(self):
        status=self.computationStatus
        if status.statusIdentifier in (StatusIdentifier.NEW,StatusIdentifier.RUNNING):
            self._integrateFlow()
        if status.statusIdentifier==StatusIdentifier.POSTPROCESSING:
            self._postprocess()
        elif status.statusIdentifier==StatusIdentifier.FINISHED:
            logger.info('Nothing left to do. Task has been finished.')

    def _integrateFlow(self):
        status=self.computationStatus
        core=self.frgCore
        cutoffGrid=core.context.cutoff
        cutoff=cutoffGrid.begin()
        if status.statusIdentifier==StatusIdentifier.RUNNING:
            if not core.flowingFunctional.readCheckpoint(self.fileset.checkpointFile):
                raise ConfigurationError('Could not resume from checkpoint file '+self.fileset.checkpointFile)
            cutoff=cutoffGrid.find(core.flowingFunctional.cutoff)
            if cutoff==cutoffGrid.end():
                raise ConfigurationError('Checkpoint cutoff %g is not part of the cutoff grid'%core.flowingFunctional.cutoff)
            logger.info('Resuming computation at cutoff %g',core.flowingFunctional.cutoff)
        else:
            status.startTime=now()
        status.checkpointTime=now()

        while cutoff!=cutoffGrid.last():
            logger.debug('Begin computation of flow.')
            core.computeStep()
            logger.debug('Begin computation of measurements.')
            core.takeMeasurements(dataFile=self.fileset.dataFile)

            if core.flow.isDiverged():
                logger.info('Vertex has diverged. Stopping calculation.')
                break

            cutoff+=1
            core.finalizeStep(cutoffGrid[cutoff])
            logger.info('Current cutoff is at %.6f',core.flowingFunctional.cutoff)

            if (now()-status.checkpointTime).total_seconds()>=self.checkpointTime:
                status.checkpointTime=now()
                status.statusIdentifier=StatusIdentifier.RUNNING
                self.writeCheckpoint()

        core.takeMeasurements(dataFile=self.fileset.dataFile)
        if core.postprocessingRequired():
            status.statusIdentifier=StatusIdentifier.POSTPROCESSING
        else:
            status.endTime=now()
            status.statusIdentifier=StatusIdentifier.FINISHED
        status.checkpointTime=now()
        self.writeCheckpoint()

    def _postprocess(self):
        status=self.computationStatus
        core=self.frgCore
        logger.info('Entering post-processing stage.')
        if os.path.exists(self.fileset.dataFile):
            n=0
            while core.flowingFunctional.readCheckpoint(self.fileset.dataFile,n):
                logger.info('Post-processing measurements at cutoff %g',core.flowingFunctional.cutoff)
                core.takeMeasurements(postprocessing=True)
                n+=1
        else:
            logger.warning('No data file %s found for post-processing',self.fileset.dataFile)

        status.endTime=now()
        status.statusIdentifier=StatusIdentifier.FINISHED
        if self.loadManager.isMasterRank():
            self.taskFileParser.writeTaskFile(status)
        logger.info('Post-processing done.')

    def writeCheckpoint(self):
        if self.loadManager.isMasterRank():
            logger.info('Writing checkpoint.')
            self.frgCore.flowingFunctional.writeCheckpoint(self.fileset.checkpointFile)
            self.taskFileParser.writeTaskFile(self.computationStatus)
