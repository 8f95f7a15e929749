from __future__ import annotations

from typing import Dict

from ..errors import AuthorizationFailure, InvalidInput
from ..numeric.fixed_point import MAX_UINT256, checked, checked_add, checked_sub
from .chain import Chain, Component


class Balances:
    """Fungible balance book: balances, allowances, supply.

    An allowance of MAX_UINT256 is infinite and is never decremented.
    Every method validates before it mutates, so a raised error leaves the
    book untouched.
    """

    def __init__(self, symbol: str, decimals: int = 18):
        self.symbol = symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[str, Dict[str, int]] = {}
        self.total_supply = 0

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if not owner or not spender:
            raise InvalidInput("zero_address", "approve requires owner and spender")
        self.allowances.setdefault(owner, {})[spender] = checked(amount)

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if current < amount:
            raise AuthorizationFailure(
                "insufficient_allowance", f"{spender} may spend {current} {self.symbol} of {owner}, needs {amount}"
            )
        self.allowances[owner][spender] = current - amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        if not to:
            raise InvalidInput("zero_address", "transfer to empty address")
        checked(amount)
        held = self.balance_of(sender)
        if held < amount:
            raise InvalidInput("insufficient_balance", f"{sender} holds {held} {self.symbol}, needs {amount}")
        self.balances[sender] = held - amount
        self.balances[to] = self.balance_of(to) + amount

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        if self.balance_of(owner) < checked(amount):
            raise InvalidInput(
                "insufficient_balance", f"{owner} holds {self.balance_of(owner)} {self.symbol}, needs {amount}"
            )
        self.spend_allowance(owner, spender, amount)
        self.transfer(owner, to, amount)

    def mint(self, to: str, amount: int) -> None:
        if not to:
            raise InvalidInput("zero_address", "mint to empty address")
        self.total_supply = checked_add(self.total_supply, amount)
        self.balances[to] = self.balance_of(to) + amount

    def burn(self, owner: str, amount: int) -> None:
        held = self.balance_of(owner)
        if held < checked(amount):
            raise InvalidInput("insufficient_balance", f"{owner} holds {held} {self.symbol}, cannot burn {amount}")
        self.balances[owner] = held - amount
        self.total_supply = checked_sub(self.total_supply, amount)

    def holders(self) -> Dict[str, int]:
        return {acct: bal for acct, bal in self.balances.items() if bal > 0}


class Asset(Component):
    """The single fungible asset the vault accepts, as a chain component.

    `mint`/`burn` are unrestricted; they stand in for the outside world
    (user funding, interest paid by a lending market, slashing).
    """

    state_fields = ("book",)

    def __init__(self, chain: Chain, address: str, symbol: str, decimals: int = 18):
        super().__init__(chain, address)
        self.book = Balances(symbol, decimals)

    @property
    def symbol(self) -> str:
        return self.book.symbol

    @property
    def decimals(self) -> int:
        return self.book.decimals

    @property
    def total_supply(self) -> int:
        return self.book.total_supply

    def balance_of(self, account: str) -> int:
        return self.book.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.book.allowance(owner, spender)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.book.approve(owner, spender, amount)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self.book.transfer(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        self.book.transfer_from(spender, owner, to, amount)

    def mint(self, to: str, amount: int) -> None:
        self.book.mint(to, amount)

    def burn(self, owner: str, amount: int) -> None:
        self.book.burn(owner, amount)
