from dataclasses import dataclass

# Returned instead of raising when the tree has no identifiable root
NO_ROOT_SENTINEL = 'Error: Could not find root of A11y tree.'

# Rough cost of a full snapshot generation, used to estimate cache savings
ESTIMATED_GENERATION_SECONDS = 0.25


@dataclass
class SnapshotCacheStats:
	hits: int = 0
	misses: int = 0
	# estimated seconds saved by cache hits
	total_saved: float = 0.0

	@property
	def hit_rate(self) -> float:
		total = self.hits + self.misses
		return (self.hits / total * 100) if total else 0.0

	def to_dict(self) -> dict[str, float | int | str]:
		return {
			'hits': self.hits,
			'misses': self.misses,
			'total_saved': round(self.total_saved, 3),
			'hit_rate': f'{self.hit_rate:.1f}%',
		}
