"""
netscen.kernel - Simulation kernel interface and reference kernel

The kernel executes scheduled callbacks on a virtual clock. SimPyKernel is
the reference implementation used by the harness and the tests.
"""

from netscen.kernel.kernel import Kernel
from netscen.kernel.metrics import KernelMetrics
from netscen.kernel.simpy_kernel import SimPyKernel

__all__ = ['Kernel', 'KernelMetrics', 'SimPyKernel']
