"""ACME certificate manager keeping a set of domains renewed."""

# version number like 1.2.3a0, must have at least 2 parts, like 1.2
__version__ = '0.4.0.dev0'
