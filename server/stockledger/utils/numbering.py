from sqlalchemy.orm import Session

from stockledger.models import DocumentSequence


def _parse_sequence(number) -> int:
    try:
        return int(str(number).rsplit("-", 1)[-1])
    except (ValueError, TypeError):
        return 0


def _latest_stored_number(db: Session, model, column, prefix: str) -> int:
    latest = (
        db.query(column)
        .filter(column.like(f"{prefix}-%"))
        .order_by(model.id.desc())
        .first()
    )
    if latest and latest[0]:
        return _parse_sequence(latest[0])
    return 0


def next_document_number(db: Session, model, column, prefix: str, width: int = 5) -> str:
    """Next ``PREFIX-00001`` style number from the per-prefix counter.

    The counter row is locked and only ever moves forward, so a number stays
    used after its document is deleted. It also skips past any higher number
    already stored, such as one supplied explicitly on create.
    """
    sequence = (
        db.query(DocumentSequence)
        .filter(DocumentSequence.prefix == prefix)
        .with_for_update()
        .one_or_none()
    )
    if sequence is None:
        sequence = DocumentSequence(prefix=prefix, current_number=0)
        db.add(sequence)
    sequence.current_number = max(sequence.current_number or 0, _latest_stored_number(db, model, column, prefix)) + 1
    db.flush()
    return f"{prefix}-{sequence.current_number:0{width}d}"
