import logging
import numpy as np
from pffrg.coreSU2 import FrgCoreSU2
from pffrg.coreBlock import FrgCoreXYZ,FrgCoreTRI
from pffrg.measurement import CorrelationSU2,CorrelationXYZ,CorrelationTRI
from pffrg.inputParser import stringToFloat
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

_cores={'SU2':FrgCoreSU2,'XYZ':FrgCoreXYZ,'TRI':FrgCoreTRI}
_measurements={'SU2':{'correlation':CorrelationSU2},'XYZ':{'correlation':CorrelationXYZ},'TRI':{'correlation':CorrelationTRI}}

def _cutoffValue(spec,key,default):
    value=spec.get(key,None)
    if value is None or value=='':
        return default
    if isinstance(value,str):
        return stringToFloat(value)
    return float(value)

def _flag(value):
    if isinstance(value,str):
        if value.strip().lower() in ('true','1','yes'):
            return True
        if value.strip().lower() in ('false','0','no',''):
            return False
        raise ConfigurationError("Invalid boolean value '"+value+"'")
    return bool(value)

def newMeasurements(identifier,context,measurementSpecs,defaultOutput,regulator='litim'):
    """
    Parameters
    ----------
    identifier : str
        Symmetry class, one of SU2, XYZ, TRI

    measurementSpecs : list of dict
        Measurement attributes: name and the optional output, minCutoff, maxCutoff, defer

    defaultOutput : str
        Observable file of measurements without output attribute

    Returns
    -------
    measurements : list of Measurement
    """
    if identifier not in _measurements:
        raise ConfigurationError("Unknown symmetry class '"+str(identifier)+"'")
    measurements=[]
    for spec in measurementSpecs:
        name=spec.get('name','')
        if name not in _measurements[identifier]:
            raise ConfigurationError("Unknown measurement '%s' for symmetry %s"%(name,identifier))
        output=spec.get('output','') or defaultOutput
        measurement=_measurements[identifier][name](context,output,_cutoffValue(spec,'minCutoff',0.0),\
            _cutoffValue(spec,'maxCutoff',np.inf),_flag(spec.get('defer',False)),regulator)
        logger.info('Added measurement [%s]',name)
        measurements.append(measurement)
    return measurements

def newFrgCore(identifier,context,spinModel,measurementSpecs=(),options=None,loadManager=None,defaultOutput=None):
    """Builds the flow kernel of the symmetry class identifier together with its measurements."""
    if identifier not in _cores:
        raise ConfigurationError("Unknown symmetry class '"+str(identifier)+"'")
    options=dict(options or {})
    measurements=newMeasurements(identifier,context,measurementSpecs,defaultOutput,options.get('regulator','litim'))
    core=_cores[identifier](context,spinModel,measurements,options,loadManager)
    logger.info('Initialized %s flow with %d measurements',identifier,len(measurements))
    return core
