from stockledger.utils.money import quantize_money, to_decimal
from stockledger.utils.numbering import next_document_number

__all__ = ["next_document_number", "quantize_money", "to_decimal"]
