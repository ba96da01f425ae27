import logging
import datetime
from enum import Enum
import xml.etree.ElementTree as ET
import numpy as np
from pffrg.frequencyGrid import FrequencyGrid
from pffrg.cutoffGrid import CutoffGrid
from pffrg.frgContext import FrgContext
from pffrg.latticeFactory import LatticeUnitCell,SpinModelUnitCell,newLatticeModel,defaultResourcePath
from pffrg.coreFactory import newFrgCore
from pffrg.inputParser import stringToFloat,stringToList
from pffrg.exceptions import ConfigurationError,CheckpointIOError

logger=logging.getLogger(__name__)

timeFormat='%Y-%m-%d %H:%M:%S'

class StatusIdentifier(Enum):
    NEW='new'
    RUNNING='running'
    POSTPROCESSING='postprocessing'
    FINISHED='finished'

class ComputationStatus:
    """
    Progress of a computation as recorded in the task file.

    ...
    Attributes
    ----------
    statusIdentifier : StatusIdentifier

    startTime, checkpointTime, endTime : datetime.datetime or None
    """
    def __init__(self,statusIdentifier=StatusIdentifier.NEW,startTime=None,checkpointTime=None,endTime=None):
        self.statusIdentifier=statusIdentifier
        self.startTime=startTime
        self.checkpointTime=checkpointTime
        self.endTime=endTime

def now():
    return datetime.datetime.now().replace(microsecond=0)

def _parseTime(text,path):
    if text is None:
        return None
    try:
        return datetime.datetime.strptime(text,timeFormat)
    except ValueError as e:
        raise ConfigurationError('Invalid time stamp \'%s\' in %s'%(text,path)) from e

def _child(node,tag,path):
    child=node.find(tag)
    if child is None:
        raise ConfigurationError('Task file is missing the required node %s.%s'%(path,tag))
    return child

def _attribute(node,name,path):
    value=node.get(name)
    if value is None:
        raise ConfigurationError('Task file node %s is missing the required attribute %s'%(path,name))
    return value

def _value(node,tag,path):
    text=_child(node,tag,path).text
    if text is None or text.strip()=='':
        raise ConfigurationError('Task file node %s.%s is empty'%(path,tag))
    return stringToFloat(text)

def _count(node,tag,path):
    value=_value(node,tag,path)
    if value!=int(value):
        raise ConfigurationError('Task file node %s.%s must be an integer'%(path,tag))
    return int(value)

def parseFrequency(node,path='task.parameters.frequency'):
    kind=node.get('discretization','exponential')
    if kind=='exponential':
        low,high,count=_value(node,'min',path),_value(node,'max',path),_count(node,'count',path)
        if low<=0 or high<=low or count<2:
            raise ConfigurationError('Invalid exponential frequency discretization')
        values=np.geomspace(low,high,count)
    elif kind=='linear':
        low,high,count=_value(node,'min',path),_value(node,'max',path),_count(node,'count',path)
        if low<=0 or high<=low or count<2:
            raise ConfigurationError('Invalid linear frequency discretization')
        values=np.linspace(low,high,count)
    elif kind=='manual':
        values=stringToList(node.text or '')
    else:
        raise ConfigurationError('Unknown frequency discretization \''+kind+'\'')
    return FrequencyGrid(values)

def parseCutoff(node,path='task.parameters.cutoff'):
    kind=node.get('discretization','exponential')
    if kind=='exponential':
        return CutoffGrid.exponential(_value(node,'max',path),_value(node,'min',path),_value(node,'step',path))
    if kind=='linear':
        return CutoffGrid.linear(_value(node,'max',path),_value(node,'min',path),_count(node,'count',path))
    if kind=='manual':
        return CutoffGrid(stringToList(node.text or ''))
    raise ConfigurationError('Unknown cutoff discretization \''+kind+'\'')

class TaskFileParser:
    """
    Reads a task file and sets up the grids, the lattice and the spin
    model it describes. The parser stays bound to the file and writes
    the computation status back into it.

    ...
    Attributes
    ----------
    context : FrgContext
        Frequency grid, cutoff grid and lattice

    spinModel : SpinModel

    symmetry : str
        Symmetry class of the flow equations

    measurements : list of dict
        Attributes of the measurement nodes

    options : dict
        Attributes of the options node, passed to the flow kernel

    computationStatus : ComputationStatus

    Methods
    -------
    newFrgCore(obsFile,loadManager)
        Flow kernel and measurements described by the task file

    writeTaskFile(computationStatus)
        Rewrites the calculation node
    """
    def __init__(self,taskFilePath,resourcePath=None,forceRestart=False,ldfPath=None):
        self.taskFilePath=taskFilePath
        try:
            self._tree=ET.parse(taskFilePath)
        except (OSError,ET.ParseError) as e:
            raise ConfigurationError('Could not read task file '+taskFilePath) from e
        root=self._tree.getroot()
        if root.tag!='task':
            raise ConfigurationError('Task file root node must be task')
        resourcePath=resourcePath or defaultResourcePath()

        parameters=_child(root,'parameters','task')
        path='task.parameters'
        frequency=parseFrequency(_child(parameters,'frequency',path))
        cutoff=parseCutoff(_child(parameters,'cutoff',path))

        latticeNode=_child(parameters,'lattice',path)
        latticeName=_attribute(latticeNode,'name',path+'.lattice')
        latticeRange=stringToFloat(_attribute(latticeNode,'range',path+'.lattice'))
        if latticeRange<0 or latticeRange!=int(latticeRange):
            raise ConfigurationError('Lattice range must be a non-negative integer')

        modelNode=_child(parameters,'model',path)
        modelName=_attribute(modelNode,'name',path+'.model')
        self.symmetry=_attribute(modelNode,'symmetry',path+'.model')
        modelOptions={c.tag:(c.text or '').strip() for c in modelNode}

        unitCell=LatticeUnitCell.fromResources(latticeName,resourcePath)
        modelUnitCell=SpinModelUnitCell.fromResources(modelName,resourcePath,modelOptions)
        lattice,self.spinModel=newLatticeModel(unitCell,modelUnitCell,int(latticeRange),ldfPath)
        self.context=FrgContext(frequency,cutoff,lattice)

        self.measurements=[dict(m.attrib) for m in parameters.findall('measurement')]
        for i,m in enumerate(self.measurements):
            if 'name' not in m:
                raise ConfigurationError('Task file node %s.measurement[%d] is missing the required attribute name'%(path,i))
        optionsNode=parameters.find('options')
        self.options=dict(optionsNode.attrib) if optionsNode is not None else {}

        self.computationStatus=self._readStatus(root)
        if forceRestart:
            self.computationStatus=ComputationStatus()
        logger.info('Parsed task file %s with status %s',taskFilePath,self.computationStatus.statusIdentifier.value)

    def _readStatus(self,root):
        node=root.find('calculation')
        if node is None:
            return ComputationStatus()
        try:
            identifier=StatusIdentifier(node.get('status','new'))
        except ValueError as e:
            raise ConfigurationError('Unknown calculation status \''+node.get('status')+'\'') from e
        path='task.calculation'
        return ComputationStatus(identifier,_parseTime(node.get('startTime'),path),_parseTime(node.get('checkpointTime'),path),\
            _parseTime(node.get('endTime'),path))

    def newFrgCore(self,obsFile,loadManager=None):
        return newFrgCore(self.symmetry,self.context,self.spinModel,self.measurements,self.options,loadManager,obsFile)

    def writeTaskFile(self,computationStatus):
        root=self._tree.getroot()
        node=root.find('calculation')
        if node is None:
            node=ET.SubElement(root,'calculation')
        node.attrib.clear()
        node.set('status',computationStatus.statusIdentifier.value)
        for name in ('startTime','checkpointTime','endTime'):
            value=getattr(computationStatus,name)
            if value is not None:
                node.set(name,value.strftime(timeFormat))
        try:
            self._tree.write(self.taskFilePath,encoding='utf-8',xml_declaration=True)
        except OSError as e:
            raise CheckpointIOError('Could not write task file '+self.taskFilePath) from e
        logger.debug('Updated task file %s with status %s',self.taskFilePath,computationStatus.statusIdentifier.value)
