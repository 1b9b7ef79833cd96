"""
Core infrastructure layer
"""
from .constants import *
from .exceptions import *
from .logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from .interfaces import DataChannel, OutputSink, Session, SessionFactory
from .output import QueueSink, TailBuffer
from .session import ClientConfig, SFTPDataChannel, SSHSession, SSHSessionFactory
from .telemetry import Telemetry
from .utils import load_ssh_config

__all__ = [
    "ClientConfig",
    "SSHSession",
    "SSHSessionFactory",
    "SFTPDataChannel",
    "setup_logging",
    "get_logger",
    "get_stdout_console",
    "get_stderr_console",
    "DataChannel",
    "OutputSink",
    "Session",
    "SessionFactory",
    "QueueSink",
    "TailBuffer",
    "Telemetry",
    "load_ssh_config",
]
