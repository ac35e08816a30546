import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from game2048 import GameResult, GameStatus

from .auth import short_address

logger = logging.getLogger(__name__)


class RewardClient(ABC):
    """Receives finished games for one player session.

    A client is built when a session starts and closed when it ends. It only
    sees the final score and end timestamp; wallets, chains and encryption
    belong to whatever implementation sits behind it.
    """

    @abstractmethod
    def submit(self, address: str, result: GameResult) -> Dict[str, Any]:
        """Hand over a finished game and return a receipt"""
        pass

    def close(self) -> None:
        """Release anything held for the session"""
        pass


class RewardLedger:
    """Thread-safe record of every receipt issued by local reward clients"""

    def __init__(self):
        self.lock = threading.RLock()
        self.receipts: List[Dict[str, Any]] = []

    def record(self, receipt: Dict[str, Any]) -> None:
        with self.lock:
            self.receipts.append(receipt)

    def for_address(self, address: str) -> List[Dict[str, Any]]:
        with self.lock:
            return [r for r in self.receipts if r["address"] == address]


class LocalRewardClient(RewardClient):
    """Records claims in memory instead of submitting a transaction"""

    def __init__(self, ledger: RewardLedger, address: str):
        self.ledger = ledger
        self.address = address
        self.closed = False

    def submit(self, address: str, result: GameResult) -> Dict[str, Any]:
        if self.closed:
            raise RuntimeError("Reward client already closed")
        receipt = {
            "claim_id": uuid.uuid4().hex,
            "address": address,
            "score": result.score,
            "timestamp": result.ended_at,
            "status": result.status.value,
            "nft_eligible": result.status is GameStatus.WON,
        }
        self.ledger.record(receipt)
        logger.info(f"Recorded reward claim {receipt['claim_id']} for {short_address(address)}: "
                    f"score={result.score}, status={result.status.value}")
        return receipt

    def close(self) -> None:
        self.closed = True


RewardClientFactory = Callable[[str], RewardClient]


def local_reward_factory(ledger: RewardLedger) -> RewardClientFactory:
    def factory(address: str) -> RewardClient:
        return LocalRewardClient(ledger, address)
    return factory
