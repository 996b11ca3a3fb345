import csv
import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from survey_panel.aggregator import FrequencyTable
from survey_panel.models import AnalysisResult, Persona, Survey, SurveyResponse

logger = logging.getLogger(__name__)


def question_columns(survey: Survey) -> List[str]:
    """Column titles for the questions; repeated question texts get their id appended."""
    columns = []
    for question in survey.questions:
        label = question.text or question.id
        if label in columns:
            label = f"{label} ({question.id})"
        columns.append(label)
    return columns


def chart_filenames(survey: Survey) -> Dict[str, str]:
    """
    Chart file name per tabulated question.

    Names carry the question's position, so ids that differ only in case or
    punctuation never share a file, and path separators never reach the disk.
    """
    names = {}
    for position, question in enumerate(survey.questions, start=1):
        if not question.is_tabulated:
            continue
        slug = re.sub(r"[^a-z0-9]+", "_", question.id.lower()).strip("_") or "question"
        names[question.id] = f"q{position:02d}_{slug}_responses.png"
    return names


def responses_frame(survey: Survey, responses: Sequence[SurveyResponse], panel: Sequence[Persona]) -> pd.DataFrame:
    """One row per persona response, one column per question."""
    by_id = {p.id: p for p in panel}
    rows = []
    for response in responses:
        persona = by_id.get(response.persona_id)
        row: Dict[str, Any] = {
            "Persona ID": response.persona_id,
            "Name": persona.name if persona else "",
            "Age": persona.age if persona else "",
            "Occupation": persona.occupation if persona else "",
        }
        for question, column in zip(survey.questions, question_columns(survey)):
            answer = response.answer_for(question.id)
            row[column] = str(answer) if answer is not None else ""
        rows.append(row)
    columns = ["Persona ID", "Name", "Age", "Occupation"] + question_columns(survey)
    return pd.DataFrame(rows, columns=columns)


def responses_to_csv(survey: Survey, responses: Sequence[SurveyResponse], panel: Sequence[Persona]) -> str:
    """Delimited export; every field is quoted and embedded quotes are doubled."""
    frame = responses_frame(survey, responses, panel)
    return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\n")


def analysis_to_text(survey: Survey, analysis: AnalysisResult) -> str:
    lines = [
        f"Survey: {survey.title}",
        "",
        f"Overall Sentiment: {analysis.sentiment.value}",
        "",
        "Executive Summary",
        analysis.summary,
        "",
        "Key Insights",
    ]
    lines += [f"- {insight}" for insight in analysis.key_insights]
    lines += ["", "Actionable Suggestions"]
    lines += [f"- {suggestion}" for suggestion in analysis.feature_suggestions]
    return "\n".join(lines) + "\n"


def generate_charts(survey: Survey, tabulations: Dict[str, FrequencyTable], output_dir: str) -> List[str]:
    """Saves one bar chart per tabulated question and returns the file names."""
    os.makedirs(output_dir, exist_ok=True)
    filenames = chart_filenames(survey)
    generated = []
    for question in survey.questions:
        table = tabulations.get(question.id)
        if table is None:
            continue
        filename = filenames[question.id]
        labels = [str(k) for k in table.keys()]
        values = list(table.values())
        try:
            plt.figure(figsize=(max(6, len(labels) * 1.2), 5))
            sns.barplot(x=labels, y=values, color="#4f46e5")
            plt.xlabel("Response")
            plt.ylabel("Count")
            if len(labels) > 4:
                plt.xticks(rotation=15, ha='right')
            title = question.text[:60] + ('...' if len(question.text) > 60 else '')
            plt.title(title, fontsize=12, pad=12)
            plt.tight_layout()
            plt.savefig(os.path.join(output_dir, filename), dpi=150)
            generated.append(filename)
        finally:
            plt.close()
    logger.info(f"Generated {len(generated)} charts in {output_dir}")
    return generated


def build_markdown_report(
    survey: Survey,
    panel: Sequence[Persona],
    responses: Sequence[SurveyResponse],
    failures: int,
    tabulations: Dict[str, FrequencyTable],
    analysis: Optional[AnalysisResult],
    panel_stats: Dict[str, Any],
    chart_files: Sequence[str] = (),
    generated_at: Optional[datetime] = None,
) -> str:
    generated_at = generated_at or datetime.now()
    report = f"""# Survey Simulation Report: {survey.title}

**Date Generated:** {generated_at.strftime('%Y-%m-%d %H:%M:%S')}

## 1. Overview
*   **Context:** {survey.description or 'N/A'}
*   **Questions:** {len(survey.questions)}
*   **Personas on panel:** {len(panel)}
*   **Completed responses:** {len(responses)}
*   **Failed personas:** {failures}

## 2. Panel
"""
    if panel_stats.get("count"):
        report += f"*   Age: average {panel_stats['age_avg']}, median {panel_stats['age_median']:g}, range {panel_stats['age_min']}-{panel_stats['age_max']}\n"
        occupations = ", ".join(f"{k} ({v})" for k, v in panel_stats["occupation_distribution"].items())
        report += f"*   Occupations: {occupations}\n\n"
    for persona in panel:
        report += f"*   **{persona.name}**, {persona.age}, {persona.occupation}. Traits: {persona.traits}. Pain points: {persona.pain_points}\n"

    filenames = chart_filenames(survey)
    report += "\n## 3. Response Distributions\n"
    if not tabulations:
        report += "*No closed-form questions.*\n"
    for question in survey.questions:
        table = tabulations.get(question.id)
        if table is None:
            continue
        report += f"\n### {question.text}\n\n| Response | Count |\n|---|---|\n"
        for value, count in table.items():
            report += f"| {value} | {count} |\n"
        chart = filenames.get(question.id)
        if chart in chart_files:
            report += f"\n![{question.text}](visualizations/{chart})\n"

    report += "\n## 4. Analysis\n"
    if analysis is None:
        report += "*Analysis not available.*\n"
    else:
        report += f"\n**Overall Sentiment:** {analysis.sentiment.value}\n\n### Executive Summary\n{analysis.summary}\n\n### Key Insights\n"
        report += "".join(f"*   {insight}\n" for insight in analysis.key_insights)
        report += "\n### Actionable Suggestions\n"
        report += "".join(f"*   {suggestion}\n" for suggestion in analysis.feature_suggestions)
    return report


def write_responses(run, output_dir: str, filename: str = "responses.csv") -> str:
    """Writes the collected responses of a SurveyRun as CSV and returns the path."""
    os.makedirs(output_dir, exist_ok=True)
    csv_path = os.path.join(output_dir, filename)
    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        f.write(responses_to_csv(run.survey, run.responses, run.panel))
    return csv_path


def write_report(run, output_dir: str, panel_stats: Dict[str, Any], charts: bool = True) -> Dict[str, str]:
    """Writes the report bundle of a finished SurveyRun and returns the written paths."""
    os.makedirs(output_dir, exist_ok=True)
    tabulations = run.tabulations()
    written = {}

    chart_files: List[str] = []
    if charts and tabulations:
        chart_files = generate_charts(run.survey, tabulations, os.path.join(output_dir, "visualizations"))

    written["csv"] = write_responses(run, output_dir)

    if run.analysis is not None:
        text_path = os.path.join(output_dir, "analysis.txt")
        with open(text_path, "w", encoding="utf-8") as f:
            f.write(analysis_to_text(run.survey, run.analysis))
        written["text"] = text_path

    report_path = os.path.join(output_dir, "report.md")
    with open(report_path, "w", encoding="utf-8") as f:
        f.write(build_markdown_report(
            run.survey, run.panel, run.responses, run.failures, tabulations,
            run.analysis, panel_stats, chart_files,
        ))
    written["report"] = report_path
    logger.info(f"Report saved to {report_path}")
    return written
