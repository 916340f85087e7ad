from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple
import re

LINE_LABEL = re.compile(
    r"^\s*(?P<prefix>q(?:uestion)?\s*\.?\s*)?"
    r"(?P<label>\d{1,3}(?:\.\d+)?(?:\s*\([a-z]\)|[a-z])?(?:\s*\((?:i|ii|iii|iv|v|vi)\))?)"
    r"(?=[\s:.)\-]|$)(?P<delimiter>[\s:.)\-]*)(?P<answer>.*)$",
    re.IGNORECASE,
)
# A bare integer only opens an answer as "2)", "2." or "2:", never "2 moles".
BARE_NUMBER_DELIMITERS = (".", ")", ":")
GENERIC_INLINE_LABEL = r"\d{2}\.\d+"


def normalize_label(label: str) -> str:
    """Reduce a question label to a comparable key: 'Q01.1' -> '1.1', '2 (a)' -> '2a'."""
    key = label.lower()
    key = re.sub(r"question|q", "", key)
    key = re.sub(r"[\s()\[\]]", "", key).strip(".:-")
    return re.sub(r"\b0+(\d)", r"\1", key)


def is_line_label(match: "re.Match") -> bool:
    if match.group("prefix") or not match.group("label").isdigit():
        return True
    return match.group("delimiter")[:1] in BARE_NUMBER_DELIMITERS


class AnswerSegmenter:
    """Split OCR text into per-question answers.

    Labels are recognised at the start of a line ("01.1", "Q2", "2)", "3(a)").
    When no line starts with a known label the text is scanned for inline
    labels instead. A label only opens a new answer when it matches one of
    the mark scheme's question ids; anything else is treated as part of the
    current answer.
    """

    def segment(self, text: str, question_ids: Sequence[str]) -> Dict[str, str]:
        """
        Map each question id to the student's answer text.

        Args:
            text: Raw extracted text of the answer sheet
            question_ids: Ordered question ids of the mark scheme

        Returns:
            Ordered dict with one entry per question id; missing answers are ''
        """
        lookup = {normalize_label(qid): qid for qid in question_ids}
        segments = self._split_by_lines(text or "", lookup)
        if not segments:
            segments = self._split_inline(text or "", question_ids, lookup)

        answers: "OrderedDict[str, str]" = OrderedDict((qid, "") for qid in question_ids)
        for question_id, answer in segments:
            answer = answer.strip()
            if not answer:
                continue
            if answers[question_id]:
                answers[question_id] = f"{answers[question_id]}\n{answer}"
            else:
                answers[question_id] = answer
        return answers

    def _split_by_lines(self, text: str, lookup: Dict[str, str]) -> List[Tuple[str, str]]:
        segments: List[Tuple[str, str]] = []
        current: Optional[str] = None
        buffer: List[str] = []

        for line in text.splitlines():
            match = LINE_LABEL.match(line)
            question_id = None
            if match and is_line_label(match):
                question_id = lookup.get(normalize_label(match.group("label")))
            if question_id:
                if current is not None:
                    segments.append((current, "\n".join(buffer)))
                current, buffer = question_id, [match.group("answer")]
            elif current is not None:
                buffer.append(line)

        if current is not None:
            segments.append((current, "\n".join(buffer)))
        return segments

    def _split_inline(self, text: str, question_ids: Sequence[str],
                      lookup: Dict[str, str]) -> List[Tuple[str, str]]:
        alternatives = [re.escape(qid) for qid in sorted(question_ids, key=len, reverse=True)]
        alternatives.append(GENERIC_INLINE_LABEL)
        pattern = re.compile(r"(?<![\w.])(" + "|".join(alternatives) + r")(?![\w.]*\d)")

        matches = [
            (match, lookup.get(normalize_label(match.group(1))))
            for match in pattern.finditer(text)
        ]
        matches = [(match, qid) for match, qid in matches if qid]

        segments = []
        for index, (match, question_id) in enumerate(matches):
            end = matches[index + 1][0].start() if index + 1 < len(matches) else len(text)
            segments.append((question_id, text[match.end():end].strip(" :.)-\t")))
        return segments
