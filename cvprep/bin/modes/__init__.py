from .cli_base import *
from .manipulation import *
from .markers import *
from .pipeline import *
