"""
Dimension Chorus - Real-time mono chorus with blendable modes
Four modulated delay voices, five presets, any two active at once
"""

__version__ = "0.1.0"

# Make key components available at package level
from .chorus import DimensionChorus
from .mode_table import Mode, ModeTable, get_mode
from .mode_selector import ModeSelector
from .blender import EffectiveConfig, blend
from .errors import ChorusError, ConfigurationError, InitializationError

__all__ = [
    'DimensionChorus', 'Mode', 'ModeTable', 'get_mode', 'ModeSelector',
    'EffectiveConfig', 'blend', 'ChorusError', 'ConfigurationError',
    'InitializationError',
]
