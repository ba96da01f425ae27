import os
import logging
import multiprocessing as mp
from multiprocessing.pool import ThreadPool
import numpy as np
from pffrg.exceptions import InfrastructureError,check

logger=logging.getLogger(__name__)

_mpiEnvironment=['OMPI_COMM_WORLD_SIZE','PMI_SIZE','MPI_LOCALNRANKS']

def launchedWithMpi():
    """True if the process was started by an MPI launcher with more than one rank."""
    for var in _mpiEnvironment:
        if var in os.environ:
            try:
                if int(os.environ[var])>1:
                    return True
            except ValueError:
                pass
    return False

def worldCommunicator():
    try:
        from mpi4py import MPI
    except ImportError as e:
        raise InfrastructureError('Process was launched with MPI but mpi4py is not available') from e
    return MPI.COMM_WORLD

class DataStack:
    """Linear index range [0,size) whose unit of work writes one row into each buffer."""
    def __init__(self,size,worker,buffers):
        self.size=size
        self.worker=worker
        self.buffers=[np.asarray(b).reshape(size,-1) for b in buffers]
        for b,original in zip(self.buffers,buffers):
            check(np.shares_memory(b,original),'Data stack buffers must be reshapeable without copy')

class LoadManager:
    """
    Distributes data stacks across MPI ranks and, within every rank,
    across a pool of threads.

    Each rank computes a contiguous block of every stack. After all
    blocks are done, the buffers are synchronized so that all ranks
    hold identical data when run returns.

    ...
    Attributes
    ----------
    threads : int
        Size of the thread pool of this rank

    rank, nRanks : int
        Rank of this process and number of ranks

    Methods
    -------
    registerStack(size,worker,buffers)
        Registers a stack and returns its id

    run(stackIds)
        Evaluates all indices of the given stacks

    isMasterRank()
        True on rank 0
    """
    def __init__(self,threads=0,comm=None):
        if comm is None and launchedWithMpi():
            comm=worldCommunicator()
        self.comm=comm
        if comm is not None:
            self.rank=comm.Get_rank()
            self.nRanks=comm.Get_size()
        else:
            self.rank=0
            self.nRanks=1
        self.setThreads(threads)
        self._stacks=[]
        logger.debug('Load manager on rank %d of %d with %d threads',self.rank,self.nRanks,self.threads)

    def isMasterRank(self):
        return self.rank==0

    def setThreads(self,threads):
        """Resizes the thread pool, 0 selects one thread per CPU."""
        self.threads=int(threads) if threads and int(threads)>0 else mp.cpu_count()

    def registerStack(self,size,worker,buffers):
        """
        Parameters
        ----------
        size : int
            Number of units of work

        worker : function(i)
            Returns one row per buffer for the index i

        buffers : list of array_like(float)
            Output arrays, reshaped to (size,width)

        Returns
        -------
        stackId : int
        """
        self._stacks.append(DataStack(size,worker,buffers))
        return len(self._stacks)-1

    def _blockRange(self,size,rank):
        lower=(size*rank)//self.nRanks
        upper=(size*(rank+1))//self.nRanks
        return lower,upper

    def run(self,stackIds):
        stacks=[self._stacks[i] for i in stackIds]
        tasks=[]
        for stack in stacks:
            lower,upper=self._blockRange(stack.size,self.rank)
            tasks.extend((stack,i) for i in range(lower,upper))

        def evaluate(task):
            stack,i=task
            rows=stack.worker(i)
            for b,row in zip(stack.buffers,rows):
                b[i]=row

        if self.threads>1 and len(tasks)>1:
            with ThreadPool(self.threads) as pool:
                pool.map(evaluate,tasks)
        else:
            for task in tasks:
                evaluate(task)

        if self.nRanks>1:
            self._synchronize(stacks)

    def _synchronize(self,stacks):
        from mpi4py import MPI
        try:
            for stack in stacks:
                bounds=[self._blockRange(stack.size,r) for r in range(self.nRanks)]
                lower,upper=bounds[self.rank]
                for b in stack.buffers:
                    width=b.shape[1]
                    counts=[(u-l)*width for l,u in bounds]
                    displacements=[l*width for l,_ in bounds]
                    local=np.ascontiguousarray(b[lower:upper])
                    received=np.empty_like(b)
                    self.comm.Allgatherv(local,[received,counts,displacements,MPI.DOUBLE])
                    b[:]=received
        except MPI.Exception as e:
            raise InfrastructureError('Data synchronization failed on rank %d'%self.rank) from e
