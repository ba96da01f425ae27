import re
import math
import logging
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

_number=re.compile(r'^[-+]?[\.\d]+([eE][-+]?\d+)?$')
_operand=r'[\d.]+(?:[eE][-+]?\d+)?'
_squareRoot=re.compile(r'sqrt\(('+_operand+r')\)')
_multDiv=re.compile('('+_operand+r')([\*/])('+_operand+')')

def stringToFloat(text):
    """
    Converts a task file value to float. Besides plain numbers the
    expressions sqrt(x) and chains of * and / are understood,
    e.g. 'sqrt(3)/2'.
    """
    text=text.strip()
    if _number.match(text):
        return float(text)

    parsed=text.replace(' ','')
    try:
        match=_squareRoot.search(parsed)
        while match:
            parsed=parsed[:match.start()]+repr(math.sqrt(float(match.group(1))))+parsed[match.end():]
            match=_squareRoot.search(parsed)

        match=_multDiv.search(parsed)
        while match:
            if match.group(2)=='*':
                value=float(match.group(1))*float(match.group(3))
            else:
                value=float(match.group(1))/float(match.group(3))
            parsed=parsed[:match.start()]+repr(value)+parsed[match.end():]
            match=_multDiv.search(parsed)

        result=float(parsed)
    except (ValueError,ZeroDivisionError) as e:
        raise ConfigurationError("Cannot parse numeric value '"+text+"'") from e

    logger.debug('parsed input string %s to %s',text,parsed)
    return result

def stringToList(text):
    """Parses a comma separated list of numeric values."""
    return [stringToFloat(x) for x in text.split(',') if x.strip()!='']
