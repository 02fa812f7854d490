"""DOCX report generator for finished quizzes."""

from datetime import datetime
from pathlib import Path

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt, RGBColor

from medquiz.models.quiz import AnsweredQuestion, FeedbackReport, QuizMode, QuizResult

GREEN = RGBColor(0, 128, 0)
RED = RGBColor(192, 0, 0)
GREY = RGBColor(96, 96, 96)
NAVY = RGBColor(0, 51, 102)


def ensure_output_directory(output_dir: str = "output") -> Path:
    """
    Ensure the output directory exists.

    Args:
        output_dir: Directory path to create

    Returns:
        Path object for the output directory
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    return output_path


def generate_timestamped_filename(base_name: str, extension: str = "docx") -> str:
    """
    Generate a filename with timestamp.

    Args:
        base_name: Base name for the file
        extension: File extension (without dot)

    Returns:
        Filename with timestamp
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    # Drop any directory components and extension from the base name
    base_name = Path(base_name).stem
    return f"{base_name}_{timestamp}.{extension}"


def format_duration(seconds: float) -> str:
    """Format seconds as mm:ss."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


def export_quiz_report(
    result: QuizResult,
    report: FeedbackReport | None,
    output_path: str,
    use_output_dir: bool = True,
    output_dir: str = "output",
) -> str:
    """
    Export a finished quiz and its feedback to a DOCX file.

    Args:
        result: Completed quiz
        report: Study-plan feedback (omitted from the document when None)
        output_path: File name or path for the report
        use_output_dir: If True, saves to output directory with timestamp
        output_dir: Directory to save files in (default: "output")

    Returns:
        Path to the created DOCX file
    """
    if use_output_dir:
        output_dir_path = ensure_output_directory(output_dir)
        output_path = str(output_dir_path / generate_timestamped_filename(output_path))

    doc = Document()
    setup_document_styles(doc)

    title = doc.add_heading(f"{result.topic} Quiz Results", level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    if result.preparation_context:
        context_para = doc.add_paragraph(f"Preparing for: {result.preparation_context}")
        context_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        context_para.runs[0].italic = True

    date_para = doc.add_paragraph(f"Completed: {result.completed_at.strftime('%Y-%m-%d %H:%M')}")
    date_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    date_para.runs[0].font.size = Pt(9)
    date_para.runs[0].font.color.rgb = GREY

    add_summary_table(doc, result)

    doc.add_page_break()
    heading = doc.add_heading("Question Breakdown", level=1)
    heading.runs[0].font.color.rgb = NAVY
    for i, answered in enumerate(result.answers, 1):
        add_answer_to_document(doc, i, answered)

    if report is not None:
        doc.add_page_break()
        add_feedback_to_document(doc, report)

    doc.save(output_path)
    return output_path


def setup_document_styles(doc: Document) -> None:
    """
    Set up document-wide styles.

    Args:
        doc: Document to configure
    """
    font = doc.styles["Normal"].font
    font.name = "Calibri"
    font.size = Pt(11)

    for section in doc.sections:
        section.top_margin = Inches(1)
        section.bottom_margin = Inches(1)
        section.left_margin = Inches(1)
        section.right_margin = Inches(1)


def add_summary_table(doc: Document, result: QuizResult) -> None:
    """Add the score summary as a two-column table."""
    table = doc.add_table(rows=0, cols=2)
    table.style = "Light Grid Accent 1"

    rows = [
        ("Mode", "Multiple Choice" if result.mode == QuizMode.MULTIPLE_CHOICE else "Open-Ended"),
        ("Score", f"{result.score} / {result.total_points} ({result.percentage}%)"),
        ("Performance", result.performance_label),
        ("Correct", f"{result.correct_answers} / {result.total_questions}"),
        ("Skipped", str(result.skipped_count)),
        ("Time", format_duration(result.time_spent)),
    ]
    for label, value in rows:
        cells = table.add_row().cells
        cells[0].text = label
        cells[1].text = value
        for run in cells[0].paragraphs[0].runs:
            run.bold = True


def add_answer_to_document(doc: Document, number: int, answered: AnsweredQuestion) -> None:
    """
    Add one answered question to the document.

    Args:
        doc: Document to add to
        number: 1-based question number
        answered: The recorded answer
    """
    q_para = doc.add_paragraph()
    q_run = q_para.add_run(f"Q{number}. ")
    q_run.bold = True
    q_run.font.size = Pt(12)
    q_para.add_run(answered.question)

    if answered.mode == QuizMode.MULTIPLE_CHOICE:
        for index, option in enumerate(answered.options):
            letter = "ABCD"[index]
            opt_para = doc.add_paragraph(f"   {letter}. {option}")
            opt_para.paragraph_format.left_indent = Inches(0.5)
            if index == answered.correct_index:
                opt_para.runs[0].bold = True
                opt_para.runs[0].font.color.rgb = GREEN
            elif index == answered.selected_index:
                opt_para.runs[0].font.color.rgb = RED

        status = "Skipped" if answered.skipped else ("Correct" if answered.is_correct else "Incorrect")
        status_para = doc.add_paragraph()
        status_run = status_para.add_run(f"{status}  |  {answered.points} pts")
        status_run.italic = True
        status_run.font.color.rgb = GREEN if answered.is_correct else RED
        detail = answered.explanation
    else:
        answer_para = doc.add_paragraph()
        answer_para.paragraph_format.left_indent = Inches(0.5)
        answer_para.add_run("Your answer: ").bold = True
        answer_para.add_run(answered.display_answer)

        score_para = doc.add_paragraph()
        score_run = score_para.add_run(f"Score: {answered.score or 0}/10")
        score_run.italic = True
        score_run.font.color.rgb = GREEN if answered.is_correct else RED
        detail = answered.feedback

    if detail:
        exp_para = doc.add_paragraph()
        exp_para.paragraph_format.left_indent = Inches(0.5)
        exp_run = exp_para.add_run(detail)
        exp_run.italic = True
        exp_run.font.size = Pt(10)
        exp_run.font.color.rgb = GREY

    doc.add_paragraph()


def add_feedback_to_document(doc: Document, report: FeedbackReport) -> None:
    """Render the feedback report, turning '# ' headings into document headings."""
    header = doc.add_heading("Feedback & Study Plan", level=1)
    header.runs[0].font.color.rgb = NAVY

    sections = report.sections()
    if not sections:
        doc.add_paragraph(report.text)
        return

    for title, body in sections.items():
        doc.add_heading(title, level=2)
        for line in body.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith(("* ", "- ")):
                doc.add_paragraph(stripped[2:], style="List Bullet")
            else:
                doc.add_paragraph(stripped)
