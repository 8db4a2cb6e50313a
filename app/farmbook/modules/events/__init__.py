"""
Animal and lot events (vaccinations, treatments, births, sales...).

An event with a positive cost also appends an expense to the farm cashbox.
That write is best-effort: the event is committed first and stays the record of truth.
"""
