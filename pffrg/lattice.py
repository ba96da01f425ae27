from collections import namedtuple
from enum import IntEnum
import numpy as np
from pffrg.exceptions import check

class SpinComponent(IntEnum):
    X=0
    Y=1
    Z=2
    NONE=3

LatticeSiteDescriptor=namedtuple('LatticeSiteDescriptor',['rid','spinPermutation'])
LatticeSiteDescriptor.__doc__="""Representative id of a transformed site and the spin permutation of the transformation."""

class LatticeOverlap:
    """
    Intermediate sites j which are in range of both the reference site
    and a representative r.

    ...
    Attributes
    ----------
    rid1, rid2 : array_like(int, ndim=1)
        Representatives of the pairs (0,j) and (j,r)

    permutation1, permutation2 : array_like(int, ndim=2)
        Spin permutations of the pairs (0,j) and (j,r), one row of
        four entries (x,y,z,none) per intermediate site
    """
    def __init__(self,rid1,rid2,permutation1,permutation2):
        self.rid1=np.asarray(rid1,dtype=np.int64).reshape(-1)
        self.rid2=np.asarray(rid2,dtype=np.int64).reshape(-1)
        self.permutation1=np.asarray(permutation1,dtype=np.int64).reshape(-1,4)
        self.permutation2=np.asarray(permutation2,dtype=np.int64).reshape(-1,4)
        self.size=len(self.rid1)

    def __len__(self):
        return self.size

    def __iter__(self):
        for k in range(self.size):
            yield self.rid1[k],self.rid2[k],self.permutation1[k],self.permutation2[k]

class Lattice:
    """
    Symmetry reduced lattice representation. The first size data sites
    are the representatives, data site 0 is the reference site.

    Instances are assembled by pffrg.latticeFactory.newLatticeModel.

    ...
    Attributes
    ----------
    size : int
        Number of representatives

    dataSize : int
        Number of data sites

    latticeVectors : array_like(float, ndim=2)
        Bravais lattice vectors, one per row

    basisPositions : array_like(float, ndim=2)
        Basis site positions within the unit cell

    geometry : array_like(int, ndim=2)
        (a0,a1,a2,b) of every data site

    symmetryRid : array_like(int, ndim=2)
        rid(i,j) of all pairs of data sites, -1 if the pair is out of range

    symmetryPermutation : array_like(int, ndim=3)
        Spin permutation pi(i,j) of all pairs of data sites

    siteRid, sitePermutation : array_like
        Descriptors of the pairs (0,r) for all representatives r

    invertedSiteRid, invertedSitePermutation : array_like
        Descriptors of the pairs (r,0) for all representatives r

    basis : array_like(int, ndim=1)
        Data site ids of the basis sites in the origin cell
    """
    def __init__(self,latticeVectors,basisPositions,geometry,size,symmetryRid,symmetryPermutation,overlaps,basis,ranges,bonds=()):
        self.latticeVectors=np.asarray(latticeVectors,dtype=np.float64)
        self.basisPositions=np.asarray(basisPositions,dtype=np.float64)
        self.geometry=np.asarray(geometry,dtype=np.int64)
        self.dataSize=len(self.geometry)
        self.size=size
        self.symmetryRid=np.asarray(symmetryRid,dtype=np.int64)
        self.symmetryPermutation=np.asarray(symmetryPermutation,dtype=np.int64)
        self.basis=np.asarray(basis,dtype=np.int64)
        self.bonds=list(bonds)
        self._overlaps=list(overlaps)
        self._ranges=[np.asarray(r,dtype=np.int64) for r in ranges]

        self.siteRid=np.ascontiguousarray(self.symmetryRid[0,:size])
        self.sitePermutation=np.ascontiguousarray(self.symmetryPermutation[0,:size])
        self.invertedSiteRid=np.ascontiguousarray(self.symmetryRid[:size,0])
        self.invertedSitePermutation=np.ascontiguousarray(self.symmetryPermutation[:size,0])

        for a in (self.symmetryRid,self.symmetryPermutation,self.siteRid,self.sitePermutation,\
                self.invertedSiteRid,self.invertedSitePermutation,self.geometry):
            a.setflags(write=False)

    def __len__(self):
        return self.size

    def fromParametrization(self,rid):
        check(0<=rid<self.size,'Representative id out of range')
        return rid

    def getSiteParameters(self,i):
        check(0<=i<self.dataSize,'Data site id out of range')
        return tuple(int(x) for x in self.geometry[i])

    def getSitePosition(self,i):
        a0,a1,a2,b=self.getSiteParameters(i)
        return a0*self.latticeVectors[0]+a1*self.latticeVectors[1]+a2*self.latticeVectors[2]+self.basisPositions[b]

    def isInRange(self,i,j):
        return self.symmetryRid[i,j]>=0

    def symmetryTransform(self,i,j,*spinComponents):
        """
        Parameters
        ----------
        i, j : int
            Data site ids

        spinComponents : SpinComponent, optional
            Spin components which are transformed along with the sites

        Returns
        -------
        rid : int
            Representative of the pair (i,j) if no spin components are
            given, else a tuple of rid and the transformed components
        """
        rid=self.symmetryRid[i,j]
        check(rid>=0,'Lattice sites %d and %d are not within lattice range'%(i,j))
        if len(spinComponents)==0:
            return int(rid)
        permutation=self.symmetryPermutation[i,j]
        return (int(rid),)+tuple(SpinComponent(permutation[int(sc)]) for sc in spinComponents)

    def sites(self):
        return [LatticeSiteDescriptor(int(self.siteRid[r]),tuple(self.sitePermutation[r,:3])) for r in range(self.size)]

    def invertedSites(self):
        return [LatticeSiteDescriptor(int(self.invertedSiteRid[r]),tuple(self.invertedSitePermutation[r,:3])) for r in range(self.size)]

    def overlap(self,rid):
        check(0<=rid<self.size,'Representative id out of range')
        return self._overlaps[rid]

    def range(self,b):
        """Data site ids within lattice range of basis site b in the origin cell."""
        check(0<=b<len(self._ranges),'Basis site index out of range')
        return self._ranges[b]

