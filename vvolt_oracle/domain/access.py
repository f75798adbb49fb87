from __future__ import annotations
from dataclasses import dataclass

from ..core.errors import ErrorCode, OracleError


@dataclass
class AccessControl:
    admin: str
    oracle_operator: str

    def is_admin(self, caller: str) -> bool:
        return caller == self.admin

    def is_oracle_operator(self, caller: str) -> bool:
        return caller == self.oracle_operator

    def require_admin(self, caller: str) -> None:
        if not self.is_admin(caller):
            raise OracleError(ErrorCode.NOT_AUTHORIZED, f"{caller} is not admin")

    def require_oracle_operator(self, caller: str) -> None:
        if not self.is_oracle_operator(caller):
            raise OracleError(ErrorCode.NOT_AUTHORIZED, f"{caller} is not oracle operator")
