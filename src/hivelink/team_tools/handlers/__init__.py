"""チームプロトコルツールのハンドラー

ツールのハンドラー実装を機能別に分割。
"""

from .board import BoardHandlers
from .contracts import ContractHandlers
from .messaging import MessageHandlers

__all__ = [
    "BoardHandlers",
    "MessageHandlers",
    "ContractHandlers",
]
