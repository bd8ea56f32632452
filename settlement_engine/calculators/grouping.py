"""
Table Group Index

Resolves which group a rate table belongs to, numbers tables within their
group, and picks the agreement version that applies to a settlement period.
"""

import logging

from ..models import CommissionTable, CommissionTableGroup, Counterparty, parse_date, volume_key

logger = logging.getLogger(__name__)

UNGROUPED_SEQUENCE = "undefined"


class TableGroupIndex:
    """
    Read-only table_id -> group projection over one counterparty snapshot.

    Built once per snapshot; membership stays owned by the groups.
    """

    def __init__(self, counterparty: Counterparty):
        self.counterparty = counterparty
        self._group_by_table = self._build(counterparty)

    @staticmethod
    def _build(counterparty: Counterparty) -> dict[str, CommissionTableGroup]:
        """
        Map each table id to its group.

        Active groups take precedence over inactive ones. Between two active
        groups the first one wins.
        """
        index: dict[str, CommissionTableGroup] = {}
        for group in counterparty.groups:
            for table_id in group.member_table_ids:
                current = index.get(table_id)
                if current is None:
                    index[table_id] = group
                elif group.active and not current.active:
                    index[table_id] = group
                elif group.active and current.active:
                    logger.warning(
                        "Table %s of counterparty %s is in active groups %s and %s, using %s",
                        table_id, counterparty.id, current.id, group.id, current.id,
                    )
        return index

    def group_for(self, table_id: str) -> CommissionTableGroup | None:
        return self._group_by_table.get(table_id)

    def member_tables(self, group: CommissionTableGroup, include_closed: bool = False) -> list[CommissionTable]:
        """Member tables in member order. Dangling ids are skipped."""
        tables = []
        for table_id in group.member_table_ids:
            table = self.counterparty.table_by_id(table_id)
            if table is None:
                logger.warning(
                    "Group %s of counterparty %s references missing table %s",
                    group.id, self.counterparty.id, table_id,
                )
                continue
            if table.is_closed and not include_closed:
                continue
            tables.append(table)
        return tables

    def sequence_number(self, table_id: str) -> str:
        """
        1-based position among the group's non-supplemental members, as "01", "02", ...

        Members are numbered in the counterparty's table order, not in the
        group's member order. Returns "undefined" for a table outside any
        group. Positional only, recomputed on every call.
        """
        group = self.group_for(table_id)
        if group is None:
            return UNGROUPED_SEQUENCE

        members = set(group.member_table_ids)
        position = 0
        for table in self.counterparty.tables:
            if table.id not in members or table.is_supplemental_income:
                continue
            position += 1
            if table.id == table_id:
                return f"{position:02d}"
        return UNGROUPED_SEQUENCE

    def ungrouped_tables(self) -> list[CommissionTable]:
        return [t for t in self.counterparty.tables if t.id not in self._group_by_table]

    def groups_for_period(self, period: str) -> list[CommissionTableGroup]:
        """Active groups whose validity window covers the period."""
        return [g for g in self.counterparty.groups if g.active and g.covers_period(period)]

    def resolve_group_for_period(self, period: str) -> CommissionTableGroup | None:
        """The agreement version in force for a period: the latest-starting covering group."""
        candidates = self.groups_for_period(period)
        if not candidates:
            return None
        # max() keeps the first of equal keys, so enumeration order breaks ties
        return max(candidates, key=lambda g: parse_date(g.valid_from) if g.valid_from else parse_date("0001-01-01"))

    def volume_keys(self, group: CommissionTableGroup) -> list[str]:
        """Volume keys a settlement of this group is expected to fill in."""
        keys = []
        for table in self.member_tables(group):
            if table.is_supplemental_income:
                keys.append(volume_key(table.id))
            else:
                keys.extend(volume_key(table.id, rate.term) for rate in table.active_rates())
        return keys
