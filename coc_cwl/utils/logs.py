import os
import logging
import logging.handlers

LOG = logging.getLogger("coc.cwl.main")
DATA_LOG = logging.getLogger("coc.cwl.data")
HTTP_LOG = logging.getLogger("coc.cwl.http")

log_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s')

def _attach_handler(logger:logging.Logger,path:str,filename:str,max_mb:int):
    if not os.path.exists(path):
        os.makedirs(path)
    log_file = os.path.join(path,filename)
    for handler in logger.handlers:
        if isinstance(handler,logging.handlers.RotatingFileHandler) and handler.baseFilename == os.path.abspath(log_file):
            return handler

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_mb*1024*1024,
        backupCount=9
        )
    handler.setFormatter(log_formatter)
    logger.addHandler(handler)
    return handler

def setup_logging(log_path:str,level:int=logging.INFO):
    LOG.setLevel(level)
    DATA_LOG.setLevel(level)
    HTTP_LOG.setLevel(level)

    _attach_handler(LOG,f"{log_path}/main","main.log",3)
    _attach_handler(DATA_LOG,f"{log_path}/data","data.log",10)
    _attach_handler(HTTP_LOG,f"{log_path}/http","http.log",3)
    LOG.info(f"CWL Tracker logging to {log_path}.")
