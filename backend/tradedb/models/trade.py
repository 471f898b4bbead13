from sqlalchemy import BigInteger, Column, Integer, Numeric, SmallInteger, String, Text

from tradedb.core.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
TradeId = BigInteger().with_variant(Integer, "sqlite")
TradeValue = Numeric(20, 6, asdecimal=True)


class TradeRowMixin:
    """Columns shared by every trade-derived table; only the value column differs."""

    id = Column(TradeId, primary_key=True, autoincrement=True)
    year = Column(SmallInteger, nullable=False, index=True)
    region1 = Column(String(2), nullable=False)
    region2 = Column(String(2), nullable=False)
    industry1 = Column(Text, nullable=False, default="")
    industry2 = Column(Text, nullable=False, default="")
    tradeflow_type = Column(String(10), nullable=False)  # 'imports', 'exports', 'domestic'
    source_file = Column(String(500), nullable=True)  # e.g. 2022/US/imports/trade.csv

    def __repr__(self):
        return f"<{type(self).__name__}({self.year} {self.region1}->{self.region2}, {self.tradeflow_type})>"


class TradeAmount(TradeRowMixin, Base):
    __tablename__ = "trade"

    amount = Column(TradeValue, nullable=False)


class TradeEmployment(TradeRowMixin, Base):
    __tablename__ = "trade_employment"

    employment_value = Column(TradeValue, nullable=False)


class TradeFactor(TradeRowMixin, Base):
    __tablename__ = "trade_factor"

    factor_value = Column(TradeValue, nullable=False)


class TradeImpact(TradeRowMixin, Base):
    __tablename__ = "trade_impact"

    impact_value = Column(TradeValue, nullable=False)


class TradeMaterial(TradeRowMixin, Base):
    __tablename__ = "trade_material"

    material_value = Column(TradeValue, nullable=False)


class TradeResource(TradeRowMixin, Base):
    __tablename__ = "trade_resource"

    resource_value = Column(TradeValue, nullable=False)


class BeaTable1(TradeRowMixin, Base):
    __tablename__ = "bea_table1"

    bea_value = Column(TradeValue, nullable=False)


class BeaTable2(TradeRowMixin, Base):
    __tablename__ = "bea_table2"

    bea_value = Column(TradeValue, nullable=False)


class BeaTable3(TradeRowMixin, Base):
    __tablename__ = "bea_table3"

    bea_value = Column(TradeValue, nullable=False)
