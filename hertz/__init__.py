"""
Hertz - declarative hardware reconciler
=======================================

Programs declare the hardware topology they want (pins, motor axes) as a
tree of elements; the reconciler diffs successive declarations and drives a
motion/IO controller so that the physical state follows them.

Packages:
- hertz.core: reconciler runtime (registry, orchestrator, poller, renderer)
- hertz.hardware: controller drivers (serial, mock)
- hertz.peripherals: peripheral kinds (dpinin, dpinout, motor)
"""

__version__ = "0.1.0"
