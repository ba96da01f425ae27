from collections import namedtuple

FrgContext=namedtuple('FrgContext',['frequency','cutoff','lattice'])
FrgContext.__doc__="""
Grids and lattice shared by every vertex of one computation.

...
Attributes
----------
frequency : FrequencyGrid
    Discretization of the Matsubara frequency axis

cutoff : CutoffGrid
    Integration schedule of the flow equations

lattice : Lattice
    Symmetry reduced lattice representation
"""
