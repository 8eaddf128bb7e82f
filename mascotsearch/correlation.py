"""Mapping of search results back onto peak list rows."""

import logging

import pandas as pd

from mascotsearch.constants.keys import IdentificationCols
from mascotsearch.data import Identification, PeakList
from mascotsearch.exceptions import CorrelationError
from mascotsearch.export import DEFAULT_TITLE_MARKER, parse_correlation_index
from mascotsearch.results import ParsedResultSet, PeptideHit

logger = logging.getLogger()


def identification_from_hit(hit: PeptideHit, query: int) -> Identification:
    return Identification(
        sequence=hit.sequence,
        score=hit.score,
        proteins=list(hit.proteins),
        peptide_mr=hit.peptide_mr,
        delta=hit.delta,
        modifications=hit.modifications,
        query=query,
    )


class ResultCorrelator:
    def __init__(self, peak_list: PeakList, title_marker: str = DEFAULT_TITLE_MARKER):
        self.peak_list = peak_list
        self.title_marker = title_marker

    def row_index(self, title: str) -> int:
        """Row index encoded in a query title, validated against the peak list."""
        try:
            row_index = parse_correlation_index(title, self.title_marker)
        except ValueError as e:
            raise CorrelationError(str(e)) from e

        n_rows = len(self.peak_list.rows)
        if row_index >= n_rows:
            raise CorrelationError(
                f"Row index {row_index} from title '{title}' is out of range for {n_rows} rows"
            )
        return row_index

    def correlate(self, result_set: ParsedResultSet) -> list[tuple[int, Identification]]:
        """Attach the best hit of every query to its row.

        Returns
        -------
        list[tuple[int, Identification]]
            row index and identification for every query with a hit

        Raises
        ------
        CorrelationError
            if a query with a hit has a title that does not resolve to a row.
            No row is annotated in that case.

        """
        matches = []
        for query in range(1, result_set.number_of_queries + 1):
            hit = result_set.peptide_hit(query)
            if hit is None:
                continue

            row_index = self.row_index(result_set.query_title(query))
            matches.append((row_index, identification_from_hit(hit, query)))

        # all titles resolved, rows are only touched now
        for row_index, identification in matches:
            self.peak_list.rows[row_index].add_identification(
                identification, preferred=True
            )

        logger.info(
            f"Identified {len(matches)} of {result_set.number_of_queries} queries"
        )
        return matches


def identifications_to_df(matches: list[tuple[int, Identification]]) -> pd.DataFrame:
    columns = IdentificationCols.get_values()
    if not matches:
        return pd.DataFrame(columns=columns)

    return pd.DataFrame(
        [
            {
                IdentificationCols.ROW_IDX: row_index,
                IdentificationCols.QUERY: identification.query,
                IdentificationCols.SEQUENCE: identification.sequence,
                IdentificationCols.SCORE: identification.score,
                IdentificationCols.PEPTIDE_MR: identification.peptide_mr,
                IdentificationCols.DELTA: identification.delta,
                IdentificationCols.MODIFICATIONS: identification.modifications,
                IdentificationCols.PROTEINS: ";".join(identification.proteins),
            }
            for row_index, identification in matches
        ],
        columns=columns,
    )
