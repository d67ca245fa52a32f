from .base import Toolkit
from .shell import ShellToolkit
