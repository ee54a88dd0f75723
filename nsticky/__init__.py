"""
nsticky

Sticky and staged windows for the niri Wayland compositor. Sticky windows
follow the user across workspace switches; staged windows are parked on a
reserved workspace until released.
"""

__version__ = "0.3.0"
