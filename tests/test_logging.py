'''
Tests for the console logger used by the solvers.

File        : tests/test_logging.py
License     : MIT
'''

import logging

from spdkrylov.common.flog import Logger, Colors, get_global_logger

# -------------------------------------------------------------------

class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)

def _make_logger(name, lvl=logging.DEBUG):
    logger  = Logger(name=name, lvl=lvl)
    handler = _ListHandler()
    logger.logger.addHandler(handler)
    return logger, handler

# -------------------------------------------------------------------

def test_levels_and_indentation():
    logger, handler = _make_logger("spdkrylov.test.levels")
    logger.debug("iteration", lvl=1)
    logger.info("summary")
    logger.warning("breakdown")

    assert [r.levelno for r in handler.records] == [logging.DEBUG, logging.INFO, logging.WARNING]
    assert handler.records[0].getMessage().startswith("\t->")
    assert "breakdown" in handler.records[2].getMessage()

def test_level_filtering_and_verbose_flag():
    logger, handler = _make_logger("spdkrylov.test.filter", lvl=logging.INFO)
    logger.debug("hidden")
    logger.info("shown")
    logger.info("muted", verbose=False)
    logger.say("said", log='warning')

    assert [r.getMessage() for r in handler.records] == ["shown", "said"]

def test_title_centered():
    logger, handler = _make_logger("spdkrylov.test.title")
    logger.title("CG", desired_size=10, fill='-')
    assert handler.records[0].getMessage() == "--- CG ---"

def test_colorize_without_tty():
    logger, _ = _make_logger("spdkrylov.test.colors")
    logger.has_colors = True
    assert logger.colorize("x", "red") == Colors.red + "x" + Colors.white
    assert logger.colorize("x", None) == "x"
    logger.has_colors = False
    assert logger.colorize("x", "red") == "x"

def test_global_logger_is_shared():
    assert get_global_logger() is get_global_logger()
    assert isinstance(get_global_logger(), Logger)

# -------------------------------------------------------------------
#! End of file
# -------------------------------------------------------------------
