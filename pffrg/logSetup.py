import logging

def configureLogging(verbose=False,isMasterRank=True):
    """
    Installs the console handler of the pffrg logger.

    Parameters
    ----------
    verbose : bool
        Lowers the log filter to DEBUG

    isMasterRank : bool
        Ranks other than the master rank only report errors
    """
    logger=logging.getLogger('pffrg')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler=logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(message)s',datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)
    logger.propagate=False

    if not isMasterRank:
        logger.setLevel(logging.ERROR)
    elif verbose:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)
    return logger
