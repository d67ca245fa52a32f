from .base import PIPELINE, Stage, StageContext, StageGraph, StageResult

# Importing the modules registers their stages in PIPELINE.
from . import corpus, features, lang
