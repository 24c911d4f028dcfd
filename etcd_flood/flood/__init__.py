from .base import LoadGenerator
from .flood import EtcdFlood, FloodStats
