#!/usr/bin/env python3
"""
Configuration for Dimension Chorus
Handles environment variables and the optional .env.chorus file
"""

import os
from pathlib import Path
from typing import Dict, Any


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def load_env_file(env_path: str = ".env.chorus") -> Dict[str, str]:
    """Load environment variables from file"""
    env_vars = {}

    # Try multiple locations
    locations = [
        Path(env_path),
        Path(__file__).parent.parent.parent / env_path,
        Path.cwd() / env_path
    ]

    for location in locations:
        if location.exists():
            with open(location, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#'):
                        if '=' in line:
                            key, value = line.split('=', 1)
                            # Remove inline comments
                            if '#' in value:
                                value = value.split('#')[0]
                            env_vars[key.strip()] = value.strip()
            print(f"Loaded config from: {location}")
            break

    return env_vars


def apply_env_file(env_path: str = ".env.chorus") -> Dict[str, str]:
    """
    Push values from the env file into os.environ.

    Existing environment variables win over the file. Runs once when this
    module is imported, before the settings below are read.
    """
    env_vars = load_env_file(env_path)
    for key, value in env_vars.items():
        os.environ.setdefault(key, value)

    # Map CHORUS_PULSE_SERVER to PULSE_SERVER if needed
    pulse_server = os.environ.get('CHORUS_PULSE_SERVER')
    if pulse_server and 'PULSE_SERVER' not in os.environ:
        os.environ['PULSE_SERVER'] = pulse_server

    return env_vars


# Apply the env file before any setting is read
apply_env_file()

# Audio
SAMPLE_RATE = _env_int('CHORUS_SAMPLE_RATE', 44100)
BUFFER_SIZE = _env_int('CHORUS_BUFFER_SIZE', 256)
CHANNELS = 1

# Parameter smoothing time constant (setTargetAtTime tau)
SMOOTHING_TIME_CONSTANT = _env_float('CHORUS_SMOOTHING_MS', 10.0) / 1000.0

# Longest delay any voice can reach, including modulation
MAX_DELAY_SECONDS = _env_float('CHORUS_MAX_DELAY_MS', 100.0) / 1000.0

# OSC
OSC_HOST = os.environ.get('CHORUS_OSC_HOST', '127.0.0.1')
OSC_PORT = _env_int('CHORUS_OSC_PORT', 5005)

VERBOSE = os.environ.get('CHORUS_VERBOSE', '0') == '1'


def get_config() -> Dict[str, Any]:
    """Get parsed configuration values (read fresh from the environment)"""
    config = {
        # Audio
        'sample_rate': _env_int('CHORUS_SAMPLE_RATE', 44100),
        'buffer_size': _env_int('CHORUS_BUFFER_SIZE', 256),
        'channels': CHANNELS,

        # Chorus
        'smoothing_ms': _env_float('CHORUS_SMOOTHING_MS', 10.0),
        'max_delay_ms': _env_float('CHORUS_MAX_DELAY_MS', 100.0),

        # OSC
        'osc_host': os.environ.get('CHORUS_OSC_HOST', '127.0.0.1'),
        'osc_port': _env_int('CHORUS_OSC_PORT', 5005),

        # Debug
        'verbose': os.environ.get('CHORUS_VERBOSE', '0') == '1',
        'pulse_server': os.environ.get('CHORUS_PULSE_SERVER'),
    }

    return config


def print_config():
    """Print current configuration"""
    config = get_config()

    print("\n" + "="*60)
    print("DIMENSION CHORUS - CONFIGURATION")
    print("="*60)

    sections = {
        'Audio': ['sample_rate', 'buffer_size', 'channels'],
        'Chorus': ['smoothing_ms', 'max_delay_ms'],
        'OSC': ['osc_host', 'osc_port'],
        'Debug': ['verbose', 'pulse_server']
    }

    for section, keys in sections.items():
        print(f"\n{section}:")
        for key in keys:
            if key in config:
                print(f"  {key}: {config[key]}")

    print("\n" + "="*60 + "\n")


if __name__ == "__main__":
    print_config()
