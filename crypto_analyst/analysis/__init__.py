from .indicators import IndicatorsVolumeTask
from .patterns import PricePatternTask
from .sentiment import SentimentTask
from .web_research import WebResearchTask
from .market import MarketDataTask
from .scoring import ScoreCard, ScoringEngine
