import logging.handlers
import os

from coc_cwl.utils.logs import DATA_LOG, HTTP_LOG, LOG, setup_logging

class TestLogging:

    def test_rotating_handlers_are_attached_once(self,tmp_path):
        try:
            setup_logging(str(tmp_path))
            setup_logging(str(tmp_path))

            for logger, folder, size in [(LOG,'main',3),(DATA_LOG,'data',10),(HTTP_LOG,'http',3)]:
                handlers = [h for h in logger.handlers if isinstance(h,logging.handlers.RotatingFileHandler)]
                assert len(handlers) == 1
                assert handlers[0].maxBytes == size*1024*1024
                assert handlers[0].backupCount == 9
                assert os.path.isdir(tmp_path / folder)
        finally:
            for logger in [LOG,DATA_LOG,HTTP_LOG]:
                for handler in list(logger.handlers):
                    handler.close()
                    logger.removeHandler(handler)
