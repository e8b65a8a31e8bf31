'''
This module provides a logger class for handling console and file logging with verbosity control.
It includes methods for printing messages with different log levels, formatting titles and
indenting messages, and is used by the solvers to report convergence and numerical trouble.

@note If one wants to use file logging, the environment variable PYLOGFILE should be set to a non-zero value.
@note If one wants to disable colored output, the environment variable PYLOGCOLORS should be set to '0'.

-------------------------------------------------------
file        :   spdkrylov/common/flog.py
description :   Console and file logging with verbosity control.
-------------------------------------------------------
'''

__all__         = [
    "Logger",
    "Colors",
    "get_global_logger"
]

import os
import re
import sys
import logging
import threading
from datetime import datetime
from typing import Optional, Union

######################################################
#! PRINT THE OUTPUT WITH A GIVEN COLOR
######################################################

class Colors:
    """
    ANSI colors for console output.
    """

    black   = "\033[30m"
    red     = "\033[31m"
    green   = "\033[32m"
    yellow  = "\033[33m"
    blue    = "\033[34m"
    white   = "\033[0m"  # Reset / default color

    _MAPPING = {
        "black" : black,
        "red"   : red,
        "green" : green,
        "yellow": yellow,
        "blue"  : blue,
        "white" : white
    }

    @classmethod
    def code(cls, color: str) -> str:
        return cls._MAPPING.get(color, cls.white)

# Regex for ANSI colour codes (CSI sequences: ESC [ ... m)
_ansi_escape = re.compile(r'\x1b\[[0-9;]*m')

class StripAnsiFormatter(logging.Formatter):
    def format(self, record):
        msg = super().format(record)
        return _ansi_escape.sub('', msg)

######################################################
#! PRINT THE OUTPUT WITH A GIVEN LEVEL
######################################################

ENV_LOGGER_FILE     = 'PYLOGFILE'
ENV_LOGGER_COLORS   = 'PYLOGCOLORS'

# Track already configured logger names to prevent duplicate handlers
_CONFIGURED_LOGGERS = set()

class Logger:
    """
    Logger class for handling console and file logging with verbosity control.
    """

    LEVELS = {
        logging.DEBUG   : 'debug',
        logging.INFO    : 'info',
        logging.WARNING : 'warning',
        logging.ERROR   : 'error'
    }

    LEVELS_R = {v: k for k, v in LEVELS.items()}

    def __init__(self,
                name            : str                   = "Global",
                logfile         : Optional[str]         = None,
                lvl             : Union[int, str]       = logging.INFO,
                use_ts_in_cmd   : bool                  = False):
        """
        Initialize the logger instance.

        Args:
            name (str):
                Name of the underlying `logging` logger.
            logfile (str):
                Name of the log file (only used when PYLOGFILE is set). An empty
                name means a timestamp is used.
            lvl (int | str):
                Logging level (default: logging.INFO).
            use_ts_in_cmd (bool):
                Whether to use a timestamp in console output (default: False).
        """
        self.now_str            = datetime.now().strftime("%d_%m_%Y_%H-%M_%S")
        self.lvl                = Logger.LEVELS_R.get(lvl, logging.INFO) if isinstance(lvl, str) else lvl
        self.has_colors         = sys.stdout.isatty() and os.environ.get(ENV_LOGGER_COLORS, '1') != '0'

        self.logger             = logging.getLogger(name)
        self.logger.setLevel(self.lvl)
        self.logger.propagate   = False

        console_fmt             = '%(asctime)s [%(levelname)s] %(message)s' if use_ts_in_cmd else '[%(levelname)s] %(message)s'

        # one console handler per logger name
        if name not in _CONFIGURED_LOGGERS:
            ch = logging.StreamHandler(sys.stdout)
            ch.setLevel(self.lvl)
            ch.setFormatter(logging.Formatter(console_fmt, datefmt="%d_%m_%Y_%H-%M_%S"))
            self.logger.addHandler(ch)
            _CONFIGURED_LOGGERS.add(name)

        self.logfile            = None
        if logfile is not None and os.environ.get(ENV_LOGGER_FILE, '0') != '0':
            base                = logfile[:-len('.log')] if logfile.endswith('.log') else logfile
            self.configure("./log", base if len(base) > 0 else self.now_str)

    # --------------------------------------------------------------

    def configure(self, directory: str, base_name: str):
        """
        Attach a file handler writing to `directory/base_name.log`.
        """
        os.makedirs(directory, exist_ok=True)
        self.logfile    = os.path.join(directory, f'{base_name}.log')
        f_handler       = logging.FileHandler(self.logfile, encoding='utf-8')
        f_handler.setLevel(self.lvl)
        f_handler.setFormatter(StripAnsiFormatter('%(asctime)s [%(levelname)s] %(message)s', datefmt="%d_%m_%Y_%H-%M-%S"))
        self.logger.addHandler(f_handler)
        self.info(f"Log file created: {self.logfile}")

    # --------------------------------------------------------------

    def colorize(self, txt: str, color: Optional[str]) -> str:
        if not color or color.lower() == 'white' or not self.has_colors:
            return str(txt)
        return Colors.code(color) + str(txt) + Colors.white

    @staticmethod
    def print_tab(lvl=0):
        """
        Generate indentation for message formatting.
        """
        return '\t' * lvl + ('->' if lvl > 0 else '')

    @staticmethod
    def print(msg: str, lvl=0):
        return f"{Logger.print_tab(lvl)}{msg}"

    # --------------------------------------------------------------

    def say(self, *args, end=True, log=logging.INFO, lvl=0, verbose=True, color=None):
        """
        Print and log multiple messages if verbosity is enabled.

        Args:
            *args: Messages to log.
            end (bool)      : Join the messages with newlines (default: True).
            log (int | str) : Log level, either a `logging` level or its name.
            lvl (int)       : Indentation level.
            verbose (bool)  : Log if True (default: True).
        """
        if isinstance(log, str):
            log = Logger.LEVELS_R.get(log.lower(), logging.DEBUG)
        if not verbose or log < self.lvl:
            return
        combined_message = '\n'.join(str(a) for a in args) if end else ' '.join(str(a) for a in args)
        log_function = getattr(self.logger, self.LEVELS.get(log, 'info'))
        log_function(Logger.print(self.colorize(combined_message, color), lvl))

    # --------------------------------------------------------------

    def info(self, msg: str, lvl=0, verbose=True, color=None):
        if not verbose:
            return
        self.logger.info(Logger.print(self.colorize(msg, color), lvl))

    def debug(self, msg: str, lvl=0, verbose=True, color=None):
        if not verbose:
            return
        self.logger.debug(Logger.print(self.colorize(msg, color), lvl))

    def warning(self, msg: str, lvl=0, verbose=True, color='yellow'):
        if not verbose:
            return
        self.logger.warning(Logger.print(self.colorize(msg, color), lvl))

    def warn(self, msg: str, lvl=0, verbose=True, color='yellow'): return self.warning(msg, lvl, verbose, color)

    def error(self, msg: str, lvl=0, verbose=True, color='red'):
        if not verbose:
            return
        self.logger.error(Logger.print(self.colorize(msg, color), lvl))

    # --------------------------------------------------------------

    def title(self, tail: str, desired_size: int = 50, fill: str = '=', lvl=0, verbose=True, color=None):
        """
        Log a centered title surrounded by the fill character.
        """
        if not verbose:
            return
        tail_len    = len(tail) + 2
        if tail_len >= desired_size:
            self.info(tail, lvl=lvl, color=color)
            return
        left        = (desired_size - tail_len) // 2
        right       = desired_size - tail_len - left
        self.info(f"{fill * left} {tail} {fill * right}", lvl=lvl, color=color)

######################################################
#! GLOBAL LOGGER
######################################################

_G_LOGGER     = None
_G_LOGGER_PID = None
_G_LOCK       = threading.Lock()

def get_global_logger(**kwargs) -> Logger:
    """
    One Logger wrapper per process (PID), safe across threads/forks.

    Args:
        **kwargs: Arguments to pass to the Logger constructor.
        - name (str): Name of the logger (default: "spdkrylov").
        - lvl (int): Logging level (default: logging.INFO).
        - use_ts_in_cmd (bool): Whether to use timestamps in console output (default: True).
        - logfile (str or None): Path to a logfile (default: None).

    Example
    -------
        >>> logger = get_global_logger()
        >>> logger.info("Solver started.")
        >>> logger.debug("Residual 1e-3", lvl=1)
    """
    global  _G_LOGGER, _G_LOGGER_PID
    pid     = os.getpid()

    if _G_LOGGER is not None and _G_LOGGER_PID == pid:
        return _G_LOGGER

    with _G_LOCK:
        if _G_LOGGER is not None and _G_LOGGER_PID == pid:
            return _G_LOGGER

        _G_LOGGER       = Logger(
            name            = kwargs.get("name",            "spdkrylov"),
            lvl             = kwargs.get("lvl",             logging.INFO),
            use_ts_in_cmd   = kwargs.get("use_ts_in_cmd",   True),
            logfile         = kwargs.get("logfile",         None),
        )
        _G_LOGGER_PID   = pid
        return _G_LOGGER

######################################################
#! EOF
######################################################
