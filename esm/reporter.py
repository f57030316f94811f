"""ESM Integrity Reporter

This module turns integrity validation results into a human-readable text
report and exports the drill-down tables as CSV.
"""

import os
from typing import Any, Dict, List, Optional

import pandas as pd

MAX_LISTED_ROWS = 20


class IntegrityReporter:
    """Generates the integrity report for one or more blocks.

    Attributes:
        block_results: Block name -> ESMIntegrityValidator.validate_all() output
        output_dir: Directory path where reports will be saved
        drop_log: Row counts removed by each loader step (optional)
        filter_summary: Rows removed by the branching filter (optional)

    Example:
        >>> reporter = IntegrityReporter({'block1': results1, 'block2': results2},
        ...                              'results/esm/preprocessed')
        >>> report_path = reporter.generate_report()
    """

    def __init__(self, block_results: Dict[str, Dict[str, Any]], output_dir: str,
                 drop_log: Optional[Dict[str, int]] = None,
                 filter_summary: Optional[Dict[str, int]] = None):
        self.block_results = block_results
        self.output_dir = output_dir
        self.drop_log = drop_log or {}
        self.filter_summary = filter_summary or {}

        os.makedirs(self.output_dir, exist_ok=True)

    def generate_summary_table(self) -> pd.DataFrame:
        """One row per block with expected and observed totals."""
        rows = []
        for block_name, results in self.block_results.items():
            summary = results.get('summary', {})
            rows.append({
                'block': block_name,
                'n_participants': summary.get('n_participants', 0),
                'expected_total': summary.get('expected_total', 0),
                'observed_total': summary.get('observed_total', 0),
                'deficit': summary.get('deficit', 0),
                'n_time_key_issues': len(results.get('time_key_issues', [])),
                'is_complete': results.get('is_complete', False),
            })
        return pd.DataFrame(rows)

    def export_drill_down(self) -> List[str]:
        """Write the per-block drill-down tables.

        Returns:
            Paths of the CSV files written (blocks without issues are skipped)
        """
        paths = []
        for block_name, results in self.block_results.items():
            for key in ('missing_observations', 'time_key_issues', 'participant_issues'):
                table = results.get(key)
                if isinstance(table, pd.DataFrame) and not table.empty:
                    path = os.path.join(self.output_dir, f"{block_name}_{key}.csv")
                    table.to_csv(path, index=False)
                    paths.append(path)
        return paths

    def _block_section(self, block_name: str, results: Dict[str, Any]) -> List[str]:
        lines = []
        summary = results.get('summary', {})

        lines.append("-" * 80)
        lines.append(f"{block_name.upper()} INTEGRITY")
        lines.append("-" * 80)
        lines.append(f"Participants:                 {summary.get('n_participants', 0)}")
        lines.append(f"Observations per participant: {summary.get('observations_per_participant', 0)}")
        lines.append(f"Expected observations:        {summary.get('expected_total', 0)}")
        lines.append(f"Observed observations:        {summary.get('observed_total', 0)}")
        lines.append(f"Deficit:                      {summary.get('deficit', 0)}")
        lines.append("")

        if results.get('is_complete'):
            lines.append("✓ All participants have the expected number of observations")
            lines.append("")
            return lines

        time_issues = results.get('time_key_issues', pd.DataFrame())
        if isinstance(time_issues, pd.DataFrame) and not time_issues.empty:
            lines.append(f"Found {len(time_issues)} under-represented time key(s):")
            for _, row in time_issues.head(MAX_LISTED_ROWS).iterrows():
                lines.append(
                    f"  {row['time']}: {row['n_observed']} of {row['n_expected']} "
                    f"(deficit {row['deficit']})"
                )
            if len(time_issues) > MAX_LISTED_ROWS:
                lines.append(f"  ... and {len(time_issues) - MAX_LISTED_ROWS} more time keys")
            lines.append("")

        missing = results.get('missing_observations', pd.DataFrame())
        if isinstance(missing, pd.DataFrame) and not missing.empty:
            lines.append("Participants missing observations:")
            for moniker, rows in missing.groupby('moniker'):
                keys = ', '.join(rows['time'].astype(str))
                lines.append(f"  {moniker}: {keys}")
            lines.append("")

        participant_issues = results.get('participant_issues', pd.DataFrame())
        if isinstance(participant_issues, pd.DataFrame) and not participant_issues.empty:
            lines.append(f"{len(participant_issues)} participant(s) with an unexpected total")
            lines.append("")

        return lines

    def generate_report(self) -> str:
        """Generate the integrity report.

        Returns:
            Path to the generated integrity_report.txt file
        """
        report_lines = []

        report_lines.append("=" * 80)
        report_lines.append("ESM DATA INTEGRITY REPORT")
        report_lines.append("=" * 80)
        report_lines.append("")

        timestamps = [r.get('timestamp') for r in self.block_results.values() if r.get('timestamp')]
        report_lines.append(f"Validation Date: {timestamps[0] if timestamps else 'Unknown'}")
        report_lines.append("")

        if self.drop_log:
            report_lines.append("-" * 80)
            report_lines.append("ROWS DROPPED DURING LOADING")
            report_lines.append("-" * 80)
            for step, count in self.drop_log.items():
                report_lines.append(f"  {step}: {count}")
            report_lines.append("")

        if self.filter_summary:
            report_lines.append("-" * 80)
            report_lines.append("BRANCHING-LOGIC FILTER")
            report_lines.append("-" * 80)
            for step, count in self.filter_summary.items():
                report_lines.append(f"  {step}: {count}")
            report_lines.append("")

        for block_name, results in self.block_results.items():
            report_lines.extend(self._block_section(block_name, results))

        exported = self.export_drill_down()
        if exported:
            report_lines.append("Drill-down tables saved to:")
            for path in exported:
                report_lines.append(f"  {os.path.basename(path)}")
            report_lines.append("")

        report_lines.append("=" * 80)
        report_lines.append("END OF REPORT")
        report_lines.append("=" * 80)

        report_path = os.path.join(self.output_dir, 'integrity_report.txt')
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write('\n'.join(report_lines))

        return report_path
