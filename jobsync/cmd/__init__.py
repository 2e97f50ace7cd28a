"""
Commands for jobsync's main entrypoint
"""

# Local
from .run_controller_cmd import RunControllerCmd
