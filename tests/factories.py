"""Constants shared by test modules."""

# Fixed instant used as "now" throughout the tests (ms)
NOW = 1_750_000_000_000
ONE_HOUR = 60 * 60 * 1000
