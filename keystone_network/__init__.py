# keystone_network/__init__.py
"""
keystone_network: keystone taxa of microbial co-occurrence networks.

Builds thresholded correlation networks per experimental group, scores every
taxon on standardized centralities, tracks the keystone set across thresholds
and exports the networks for Gephi.
"""
__version__ = "0.1.0"

from .config import GroupInputs, KeystoneConfig
from .keystone_network import KeystoneNetworkParser, run_keystone_analysis

__all__ = ["GroupInputs", "KeystoneConfig", "KeystoneNetworkParser", "run_keystone_analysis", "__version__"]
