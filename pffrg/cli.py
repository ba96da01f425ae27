import sys
import logging
import argparse
from pffrg.logSetup import configureLogging
from pffrg.loadManager import LoadManager
from pffrg.spinParser import SpinParser
from pffrg.latticeFactory import defaultResourcePath

logger=logging.getLogger(__name__)

def newArgumentParser():
    parser=argparse.ArgumentParser(prog='pffrg',description='Pseudo-fermion functional renormalization group solver for quantum spin models')
    parser.add_argument('--verbose',action='store_true',help='print debug messages')
    parser.add_argument('--checkpoint',type=float,default=3600.0,metavar='T',help='minimum time in seconds between two checkpoints')
    parser.add_argument('--forceRestart',action='store_true',help='ignore existing checkpoints and restart the calculation')
    parser.add_argument('--defer',action='store_true',help='defer all measurements to the post-processing stage')
    parser.add_argument('--debugLattice',action='store_true',help='write the lattice description and exit')
    parser.add_argument('--resource',default=defaultResourcePath(),metavar='P',help='directory of the lattice and model resource files')
    parser.add_argument('--task',metavar='F',help='task file')
    parser.add_argument('taskFile',nargs='?',help='task file')
    return parser

def main(argv=None):
    """Command line entry point, returns the exit code."""
    if argv is None:
        argv=sys.argv[1:]
    parser=newArgumentParser()
    try:
        arguments=parser.parse_args(argv)
    except SystemExit as e:
        return 0 if e.code in (0,None) else 1

    try:
        loadManager=LoadManager()
        configureLogging(arguments.verbose,loadManager.isMasterRank())
        if (arguments.task is None)==(arguments.taskFile is None):
            logger.error('Caught exception: exactly one task file must be specified')
            return 1
        taskFile=arguments.task if arguments.task is not None else arguments.taskFile
        spinParser=SpinParser(taskFile,arguments.resource,arguments.checkpoint,arguments.forceRestart,arguments.defer,\
            arguments.debugLattice,loadManager)
        spinParser.run()
    except Exception as e:
        logger.error('Caught exception: %s',e)
        return 1
    return 0

if __name__=='__main__':
    sys.exit(main())
